"""Background job orchestration for the graph engine."""
from factorygraph.jobs.handlers import GraphJobRunner, UnsupportedJobTypeError
from factorygraph.jobs.queue import (
    GRAPH_QUEUE,
    INDEXER_QUEUE,
    QUEUES,
    QueueSpec,
    claim_next_job,
    complete_job,
    enqueue_graph_job,
    fail_job,
    get_queue_metrics,
    prune_finished_jobs,
    recover_stalled_jobs,
    schedule_change_propagation,
    schedule_code_drift_check,
    schedule_drift_scan,
)
from factorygraph.jobs.rate_limit import SlidingWindowRateLimiter
from factorygraph.jobs.scheduler import GraphScheduler
from factorygraph.jobs.worker import GraphWorker

__all__ = [
    "GRAPH_QUEUE",
    "INDEXER_QUEUE",
    "QUEUES",
    "GraphJobRunner",
    "GraphScheduler",
    "GraphWorker",
    "QueueSpec",
    "SlidingWindowRateLimiter",
    "UnsupportedJobTypeError",
    "claim_next_job",
    "complete_job",
    "enqueue_graph_job",
    "fail_job",
    "get_queue_metrics",
    "prune_finished_jobs",
    "recover_stalled_jobs",
    "schedule_change_propagation",
    "schedule_code_drift_check",
    "schedule_drift_scan",
]

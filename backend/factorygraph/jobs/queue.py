"""Table-backed job queue for graph drift and indexer jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from factorygraph.jobs.schemas import (
    ChangedFile,
    CodeDriftCheckJob,
    FullScanJob,
    GraphJobEnvelope,
    PropagateChangeJob,
)
from factorygraph.storage.models import GraphEntityType, GraphJob, GraphJobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueSpec:
    """Retry, retention and throughput settings for one named queue."""

    name: str
    attempts: int
    backoff_seconds: float
    keep_completed: int
    keep_failed: int
    concurrency: int
    rate_limit_max: int
    rate_limit_window_seconds: float
    # A running attempt older than this is treated as abandoned by its worker.
    stall_timeout_seconds: float = 300


GRAPH_QUEUE = QueueSpec(
    name="graph:drift",
    attempts=3,
    backoff_seconds=5,
    keep_completed=500,
    keep_failed=200,
    concurrency=5,
    rate_limit_max=20,
    rate_limit_window_seconds=60,
    stall_timeout_seconds=300,
)

INDEXER_QUEUE = QueueSpec(
    name="indexer",
    attempts=3,
    backoff_seconds=10,
    keep_completed=200,
    keep_failed=100,
    concurrency=3,
    rate_limit_max=5,
    rate_limit_window_seconds=60,
    stall_timeout_seconds=600,
)

QUEUES: dict[str, QueueSpec] = {queue.name: queue for queue in (GRAPH_QUEUE, INDEXER_QUEUE)}

ACTIVE_STATUSES = (GraphJobStatus.queued, GraphJobStatus.running)


def _utcnow() -> datetime:
    """Return timezone-aware UTC now (avoids deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


def retry_delay(backoff_seconds: float, attempts: int) -> timedelta:
    """Exponential backoff: base, 2x base, 4x base, ... for attempts 1, 2, 3."""
    return timedelta(seconds=backoff_seconds * 2 ** max(attempts - 1, 0))


async def enqueue_graph_job(
    db: AsyncSession,
    job: BaseModel,
    *,
    queue: QueueSpec = GRAPH_QUEUE,
    job_key: str | None = None,
    now: datetime | None = None,
) -> GraphJob:
    """Add a job; with ``job_key``, return the queued or running job holding that key instead.

    Stalled attempts are recovered first so an abandoned job never holds its key.
    """
    now = now or _utcnow()
    if job_key is not None:
        await recover_stalled_jobs(db, queue, now=now)
        existing = await db.execute(
            select(GraphJob)
            .where(
                GraphJob.queue_name == queue.name,
                GraphJob.job_key == job_key,
                GraphJob.status.in_(ACTIVE_STATUSES),
            )
            .limit(1)
        )
        existing_row = existing.scalar_one_or_none()
        if existing_row is not None:
            logger.info(
                "graph_job_deduplicated",
                extra={"queue": queue.name, "job_key": job_key, "job_id": existing_row.id},
            )
            return existing_row

    payload = job.model_dump(mode="json")
    row = GraphJob(
        queue_name=queue.name,
        job_type=payload["type"],
        job_key=job_key,
        project_id=payload["project_id"],
        payload=payload,
        status=GraphJobStatus.queued,
        attempts=0,
        max_attempts=queue.attempts,
        backoff_seconds=queue.backoff_seconds,
        created_at=now,
        next_run_at=now,
    )
    db.add(row)
    await db.flush()
    logger.info(
        "graph_job_enqueued",
        extra={"queue": queue.name, "job_id": row.id, "job_type": row.job_type, "project_id": row.project_id},
    )
    return row


async def schedule_drift_scan(db: AsyncSession, project_id: str, *, now: datetime | None = None) -> GraphJob:
    """Queue a full project scan; at most one is pending per project."""
    return await enqueue_graph_job(
        db,
        FullScanJob(project_id=project_id),
        job_key=f"drift-scan:{project_id}",
        now=now,
    )


async def schedule_change_propagation(
    db: AsyncSession,
    project_id: str,
    entity_type: GraphEntityType,
    entity_id: str,
    new_content: str,
) -> GraphJob:
    return await enqueue_graph_job(
        db,
        PropagateChangeJob(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            new_content=new_content,
        ),
    )


async def schedule_code_drift_check(
    db: AsyncSession,
    project_id: str,
    connection_id: str,
    changed_files: list[ChangedFile] | list[dict],
    *,
    owner: str | None = None,
    repo: str | None = None,
    ref: str | None = None,
) -> GraphJob | None:
    """Queue a code drift check. Files without ``content`` are read from ``owner/repo`` at ``ref``."""
    if not changed_files:
        return None
    return await enqueue_graph_job(
        db,
        CodeDriftCheckJob(
            project_id=project_id,
            connection_id=connection_id,
            owner=owner,
            repo=repo,
            ref=ref,
            changed_files=[ChangedFile.model_validate(f) for f in changed_files],
        ),
    )


async def claim_next_job(
    db: AsyncSession,
    queue_name: str,
    *,
    now: datetime | None = None,
) -> GraphJobEnvelope | None:
    """Claim the oldest due job, first returning stalled attempts on this queue to the retry path."""
    now = now or _utcnow()
    queue = QUEUES.get(queue_name)
    if queue is not None:
        await recover_stalled_jobs(db, queue, now=now)

    query = (
        select(GraphJob)
        .where(
            GraphJob.queue_name == queue_name,
            GraphJob.status == GraphJobStatus.queued,
            ((GraphJob.next_run_at.is_(None)) | (GraphJob.next_run_at <= now)),
        )
        .order_by(GraphJob.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    result = await db.execute(query)
    job = result.scalar_one_or_none()
    if job is None:
        return None

    job.status = GraphJobStatus.running
    job.started_at = now
    job.attempts += 1
    await db.flush()

    return GraphJobEnvelope(
        job_id=job.id,
        queue_name=job.queue_name,
        job_type=job.job_type,
        job_key=job.job_key,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        created_at=job.created_at,
        payload=job.payload,
    )


async def complete_job(
    db: AsyncSession,
    job_id: str,
    result: dict | None = None,
    *,
    now: datetime | None = None,
) -> GraphJob | None:
    job = await db.get(GraphJob, job_id)
    if job is None:
        return None
    job.status = GraphJobStatus.completed
    job.completed_at = now or _utcnow()
    job.result = result
    job.error = None
    await db.flush()
    return job


async def fail_job(
    db: AsyncSession,
    job_id: str,
    reason: str,
    *,
    now: datetime | None = None,
) -> GraphJob | None:
    """Requeue with exponential backoff, or mark failed once attempts are used up."""
    job = await db.get(GraphJob, job_id)
    if job is None:
        return None

    _record_failure(job, reason, now or _utcnow())
    await db.flush()
    return job


async def recover_stalled_jobs(db: AsyncSession, queue: QueueSpec, *, now: datetime | None = None) -> int:
    """Fail running attempts that outlived ``queue.stall_timeout_seconds``.

    Covers workers that died or were cancelled mid-job. Each stalled attempt
    counts against ``max_attempts`` like any other failure.
    """
    now = now or _utcnow()
    cutoff = now - timedelta(seconds=queue.stall_timeout_seconds)
    stalled = (
        await db.execute(
            select(GraphJob)
            .where(
                GraphJob.queue_name == queue.name,
                GraphJob.status == GraphJobStatus.running,
                GraphJob.started_at <= cutoff,
            )
            .with_for_update(skip_locked=True)
        )
    ).scalars().all()

    for job in stalled:
        logger.warning(
            "graph_job_stalled",
            extra={"job_id": job.id, "queue": queue.name, "job_type": job.job_type, "attempts": job.attempts},
        )
        _record_failure(job, f"stalled: no result within {queue.stall_timeout_seconds:g}s", now)

    if stalled:
        await db.flush()
    return len(stalled)


def _record_failure(job: GraphJob, reason: str, now: datetime) -> None:
    job.error = reason
    if job.attempts >= job.max_attempts:
        job.status = GraphJobStatus.failed
        job.completed_at = now
        logger.warning(
            "graph_job_failed",
            extra={
                "job_id": job.id,
                "queue": job.queue_name,
                "job_type": job.job_type,
                "attempts": job.attempts,
                "reason": reason,
            },
        )
        # Alert event for monitoring; failed jobs are not replayed
        logger.error(
            "graph_job_failed_alert",
            extra={
                "alert_type": "job_failed",
                "severity": "high",
                "job_id": job.id,
                "queue": job.queue_name,
                "job_type": job.job_type,
                "project_id": job.project_id,
                "attempts": job.attempts,
                "max_attempts": job.max_attempts,
                "reason": reason,
            },
        )
    else:
        job.status = GraphJobStatus.queued
        job.next_run_at = now + retry_delay(job.backoff_seconds, job.attempts)
        logger.info(
            "graph_job_retry_scheduled",
            extra={"job_id": job.id, "attempts": job.attempts, "next_run_at": job.next_run_at.isoformat()},
        )


async def prune_finished_jobs(db: AsyncSession, queue: QueueSpec) -> int:
    """Keep only the newest ``keep_completed`` completed and ``keep_failed`` failed jobs."""
    removed = 0
    for status, keep in ((GraphJobStatus.completed, queue.keep_completed), (GraphJobStatus.failed, queue.keep_failed)):
        stale_ids = (
            await db.execute(
                select(GraphJob.id)
                .where(GraphJob.queue_name == queue.name, GraphJob.status == status)
                .order_by(GraphJob.completed_at.desc(), GraphJob.created_at.desc())
                .offset(keep)
            )
        ).scalars().all()
        if stale_ids:
            await db.execute(delete(GraphJob).where(GraphJob.id.in_(stale_ids)))
            removed += len(stale_ids)

    if removed:
        logger.info("graph_jobs_pruned", extra={"queue": queue.name, "removed": removed})
    await db.flush()
    return removed


async def get_queue_metrics(db: AsyncSession, queue_name: str) -> dict:
    rows = (
        await db.execute(
            select(GraphJob.status, func.count())
            .where(GraphJob.queue_name == queue_name)
            .group_by(GraphJob.status)
        )
    ).all()
    counts = {status.value: 0 for status in GraphJobStatus}
    for status, count in rows:
        counts[GraphJobStatus(status).value] = count
    return {"queue": queue_name, **counts}

"""Cron scheduling of periodic drift scans and queue retention."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from factorygraph.integrations.token_cache import ExpiringStore
from factorygraph.jobs.queue import QUEUES, prune_finished_jobs, schedule_drift_scan

logger = logging.getLogger(__name__)

SCAN_JOB_PREFIX = "drift-scan-cron:"
RETENTION_JOB_ID = "graph-queue-retention"
TOKEN_SWEEP_JOB_ID = "installation-token-sweep"


class GraphScheduler:
    """Owns an AsyncIOScheduler that feeds the graph queue."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        retention_interval_minutes: int = 15,
        scheduler: AsyncIOScheduler | None = None,
        token_store: ExpiringStore | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.retention_interval_minutes = retention_interval_minutes
        self.token_store = token_store
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    def add_periodic_scan(self, project_id: str, cron: str = "0 * * * *") -> str:
        """Enqueue a full scan of ``project_id`` on a crontab schedule, replacing any previous one."""
        job_id = f"{SCAN_JOB_PREFIX}{project_id}"
        self.scheduler.add_job(
            self.enqueue_scan,
            trigger=CronTrigger.from_crontab(cron, timezone="UTC"),
            args=[project_id],
            id=job_id,
            replace_existing=True,
        )
        logger.info("periodic_scan_scheduled", extra={"project_id": project_id, "cron": cron})
        return job_id

    def remove_periodic_scan(self, project_id: str) -> bool:
        job_id = f"{SCAN_JOB_PREFIX}{project_id}"
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info("periodic_scan_removed", extra={"project_id": project_id})
        return True

    def scheduled_projects(self) -> list[str]:
        return sorted(
            job.id[len(SCAN_JOB_PREFIX):]
            for job in self.scheduler.get_jobs()
            if job.id.startswith(SCAN_JOB_PREFIX)
        )

    async def enqueue_scan(self, project_id: str) -> None:
        async with self.session_maker() as session:
            await schedule_drift_scan(session, project_id)
            await session.commit()

    async def prune_queues(self) -> int:
        removed = 0
        async with self.session_maker() as session:
            for queue in QUEUES.values():
                removed += await prune_finished_jobs(session, queue)
            await session.commit()
        return removed

    def sweep_tokens(self) -> int:
        if self.token_store is None:
            return 0
        removed = self.token_store.sweep()
        if removed:
            logger.info("installation_tokens_swept", extra={"removed": removed})
        return removed

    def start(self, *, paused: bool = False) -> None:
        """Register the retention (and token sweep) jobs and start the scheduler."""
        self.scheduler.add_job(
            self.prune_queues,
            trigger=IntervalTrigger(minutes=self.retention_interval_minutes),
            id=RETENTION_JOB_ID,
            replace_existing=True,
        )
        if self.token_store is not None:
            self.scheduler.add_job(
                self.sweep_tokens,
                trigger=IntervalTrigger(minutes=self.retention_interval_minutes),
                id=TOKEN_SWEEP_JOB_ID,
                replace_existing=True,
            )
        self.scheduler.start(paused=paused)
        logger.info(
            "graph_scheduler_started",
            extra={"retention_interval_minutes": self.retention_interval_minutes},
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("graph_scheduler_stopped")

"""Polling worker for the graph job queue."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from factorygraph.graph.repository import SqlGraphRepository
from factorygraph.jobs.handlers import GraphJobRunner
from factorygraph.jobs.queue import GRAPH_QUEUE, QueueSpec, claim_next_job, complete_job, fail_job
from factorygraph.jobs.rate_limit import SlidingWindowRateLimiter
from factorygraph.jobs.schemas import GraphJobEnvelope
from factorygraph.observability.job_context import job_context
from factorygraph.observability.otel import get_tracer

logger = logging.getLogger(__name__)


class GraphWorker:
    """Claims jobs from one queue and runs them with bounded concurrency.

    Every attempt runs in its own session. A failed attempt is rolled back in
    full, so a retry never sees alerts from the attempt before it; the failure
    itself is recorded through a fresh session. Jobs cancelled at shutdown are
    recorded the same way, so they return to the queue instead of staying running.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        queue: QueueSpec = GRAPH_QUEUE,
        runner: GraphJobRunner | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        poll_interval_seconds: float = 1.0,
        shutdown_grace_seconds: float = 10.0,
    ) -> None:
        self.session_maker = session_maker
        self.queue = queue
        self.runner = runner or GraphJobRunner()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            queue.rate_limit_max, queue.rate_limit_window_seconds
        )
        self.poll_interval_seconds = poll_interval_seconds
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self._semaphore = asyncio.Semaphore(queue.concurrency)
        self._in_flight: set[asyncio.Task] = set()
        self._shutdown_event = asyncio.Event()

    def request_shutdown(self) -> None:
        """Trigger graceful shutdown."""
        self._shutdown_event.set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(self) -> None:
        """Poll until shutdown is requested, then wait for in-flight jobs."""
        logger.info(
            "graph_worker_starting",
            extra={"queue": self.queue.name, "concurrency": self.queue.concurrency},
        )

        while not self._shutdown_event.is_set():
            try:
                dispatched = await self._dispatch_next()
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "graph_worker_loop_error",
                    extra={"queue": self.queue.name, "error": str(exc)},
                    exc_info=True,
                )
                dispatched = False

            if dispatched:
                continue
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

        await self._drain()
        logger.info("graph_worker_stopping", extra={"queue": self.queue.name})

    async def process_next(self) -> GraphJobEnvelope | None:
        """Claim and run one job inline. Returns the job, or None when nothing was runnable."""
        envelope = await self._claim()
        if envelope is None:
            return None
        await self._execute(envelope)
        return envelope

    async def _dispatch_next(self) -> bool:
        await self._semaphore.acquire()
        try:
            envelope = await self._claim()
        except BaseException:
            self._semaphore.release()
            raise
        if envelope is None:
            self._semaphore.release()
            return False

        task = asyncio.create_task(self._execute_and_release(envelope))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return True

    async def _claim(self) -> GraphJobEnvelope | None:
        if self.rate_limiter.time_until_available() > 0:
            return None

        async with self.session_maker() as session:
            envelope = await claim_next_job(session, self.queue.name)
            await session.commit()

        if envelope is not None:
            self.rate_limiter.try_acquire()
        return envelope

    async def _execute_and_release(self, envelope: GraphJobEnvelope) -> None:
        try:
            await self._execute(envelope)
        finally:
            self._semaphore.release()

    async def _execute(self, envelope: GraphJobEnvelope) -> bool:
        tracer = get_tracer()
        with job_context(envelope.job_id), tracer.start_as_current_span(f"graph_job.{envelope.job_type}") as span:
            span.set_attribute("graph_job.id", envelope.job_id)
            span.set_attribute("graph_job.queue", envelope.queue_name)
            span.set_attribute("graph_job.attempt", envelope.attempts)

            failure: Exception | None = None
            cancelled: asyncio.CancelledError | None = None
            async with self.session_maker() as session:
                try:
                    result = await self.runner.run(SqlGraphRepository(session), envelope)
                    await complete_job(session, envelope.job_id, result.model_dump())
                    await session.commit()
                except asyncio.CancelledError as exc:
                    await session.rollback()
                    cancelled = exc
                except Exception as exc:  # noqa: BLE001
                    await session.rollback()
                    failure = exc

            if cancelled is not None:
                logger.warning(
                    "graph_job_cancelled",
                    extra={"job_id": envelope.job_id, "job_type": envelope.job_type, "attempt": envelope.attempts},
                )
                await self._record_failure(envelope, "cancelled before completion")
                raise cancelled

            if failure is None:
                logger.info(
                    "graph_job_completed",
                    extra={
                        "job_id": envelope.job_id,
                        "job_type": envelope.job_type,
                        "alerts_created": result.alerts_created,
                        "nodes_affected": result.nodes_affected,
                    },
                )
                return True

            span.record_exception(failure)
            logger.warning(
                "graph_job_attempt_failed",
                extra={
                    "job_id": envelope.job_id,
                    "job_type": envelope.job_type,
                    "attempt": envelope.attempts,
                    "error": str(failure),
                },
                exc_info=failure,
            )
            await self._record_failure(envelope, str(failure) or type(failure).__name__)
            return False

    async def _record_failure(self, envelope: GraphJobEnvelope, reason: str) -> None:
        async with self.session_maker() as session:
            await fail_job(session, envelope.job_id, reason)
            await session.commit()

    async def _drain(self) -> None:
        if not self._in_flight:
            return
        _, pending = await asyncio.wait(set(self._in_flight), timeout=self.shutdown_grace_seconds)
        if pending:
            logger.warning(
                "graph_worker_shutdown_timeout",
                extra={"queue": self.queue.name, "abandoned": len(pending)},
            )
            for task in pending:
                task.cancel()
            # Let cancelled jobs record their failure before the loop exits.
            await asyncio.gather(*pending, return_exceptions=True)

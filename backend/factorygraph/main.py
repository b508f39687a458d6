"""Entrypoint for the graph worker process."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from factorygraph.config import Settings, get_settings
from factorygraph.integrations.github import build_content_reader
from factorygraph.jobs.handlers import GraphJobRunner
from factorygraph.jobs.queue import GRAPH_QUEUE
from factorygraph.jobs.scheduler import GraphScheduler
from factorygraph.jobs.worker import GraphWorker
from factorygraph.observability.logging import configure_logging
from factorygraph.observability.otel import configure_otel
from factorygraph.storage.database import get_engine, get_session_maker, init_db

logger = logging.getLogger(__name__)


async def run_worker(
    settings: Settings | None = None,
    *,
    create_tables: bool = False,
    scan_projects: list[str] | None = None,
) -> None:
    """Run the scheduler and worker until interrupted or asked to stop."""
    settings = settings or get_settings()
    if create_tables:
        await init_db(get_engine())

    session_maker = get_session_maker()
    reader = build_content_reader(settings)
    if reader is None:
        logger.info("github_reader_disabled")
    scheduler = GraphScheduler(
        session_maker,
        retention_interval_minutes=settings.retention_interval_minutes,
        token_store=reader.tokens.store if reader is not None else None,
    )
    for project_id in scan_projects or []:
        scheduler.add_periodic_scan(project_id, settings.default_scan_cron)

    worker = GraphWorker(
        session_maker,
        queue=GRAPH_QUEUE,
        runner=GraphJobRunner(settings=settings, reader=reader),
        poll_interval_seconds=settings.worker_poll_interval_seconds,
        shutdown_grace_seconds=settings.worker_shutdown_grace_seconds,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_shutdown)
        except NotImplementedError:
            pass

    scheduler.start()
    try:
        await worker.run()
    finally:
        scheduler.shutdown()
        if reader is not None:
            await reader.close()
        await get_engine().dispose()


def main() -> None:
    """CLI entrypoint for the graph worker."""
    parser = argparse.ArgumentParser(description="Knowledge graph drift worker")
    parser.add_argument("--create-tables", action="store_true", help="create tables before starting")
    parser.add_argument(
        "--scan-project",
        action="append",
        default=[],
        metavar="PROJECT_ID",
        help="schedule a periodic drift scan for this project (repeatable)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)
    if settings.otel_endpoint:
        configure_otel(get_engine(), settings)

    asyncio.run(run_worker(settings, create_tables=args.create_tables, scan_projects=args.scan_project))


if __name__ == "__main__":
    main()

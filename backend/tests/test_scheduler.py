"""Tests for cron registration of periodic drift scans."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from factorygraph.integrations.token_cache import ExpiringStore
from factorygraph.jobs.scheduler import RETENTION_JOB_ID, TOKEN_SWEEP_JOB_ID, GraphScheduler
from factorygraph.storage.models import GraphJob


@pytest.fixture
async def graph_scheduler(session_maker):
    scheduler = GraphScheduler(session_maker, retention_interval_minutes=15)
    scheduler.start(paused=True)
    yield scheduler
    scheduler.shutdown()


@pytest.mark.asyncio
async def test_start_registers_retention_job(graph_scheduler):
    job = graph_scheduler.scheduler.get_job(RETENTION_JOB_ID)

    assert job is not None
    assert graph_scheduler.scheduled_projects() == []


@pytest.mark.asyncio
async def test_add_periodic_scan_replaces_existing(graph_scheduler):
    job_id = graph_scheduler.add_periodic_scan("p1")
    graph_scheduler.add_periodic_scan("p1", cron="*/5 * * * *")
    graph_scheduler.add_periodic_scan("p2")

    assert job_id == "drift-scan-cron:p1"
    assert graph_scheduler.scheduled_projects() == ["p1", "p2"]
    assert "*/5" in str(graph_scheduler.scheduler.get_job(job_id).trigger)


@pytest.mark.asyncio
async def test_remove_periodic_scan(graph_scheduler):
    graph_scheduler.add_periodic_scan("p1")

    assert graph_scheduler.remove_periodic_scan("p1") is True
    assert graph_scheduler.remove_periodic_scan("p1") is False
    assert graph_scheduler.scheduled_projects() == []


@pytest.mark.asyncio
async def test_invalid_cron_is_rejected(graph_scheduler):
    with pytest.raises(ValueError):
        graph_scheduler.add_periodic_scan("p1", cron="not a cron")


@pytest.mark.asyncio
async def test_scheduled_scan_enqueues_one_pending_job(graph_scheduler, session_maker):
    await graph_scheduler.enqueue_scan("p1")
    await graph_scheduler.enqueue_scan("p1")

    async with session_maker() as session:
        jobs = (await session.execute(select(GraphJob))).scalars().all()
    assert [j.job_key for j in jobs] == ["drift-scan:p1"]
    assert await graph_scheduler.prune_queues() == 0


@pytest.mark.asyncio
async def test_token_store_is_swept_on_interval(session_maker):
    now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    store: ExpiringStore[str] = ExpiringStore(clock=lambda: now)
    store.set("conn-old", "t1", now - timedelta(minutes=1))
    store.set("conn-live", "t2", now + timedelta(hours=1))
    scheduler = GraphScheduler(session_maker, token_store=store)
    scheduler.start(paused=True)
    try:
        job = scheduler.scheduler.get_job(TOKEN_SWEEP_JOB_ID)
        assert job is not None
        assert job.func() == 1
    finally:
        scheduler.shutdown()

    assert len(store) == 1
    assert store.get("conn-live") == "t2"


@pytest.mark.asyncio
async def test_no_token_sweep_without_store(graph_scheduler):
    assert graph_scheduler.scheduler.get_job(TOKEN_SWEEP_JOB_ID) is None
    assert graph_scheduler.sweep_tokens() == 0

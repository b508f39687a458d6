"""Tests for the expiring installation token store."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from factorygraph.integrations.token_cache import ExpiringStore, InstallationTokenCache


def test_entries_stop_being_served_inside_refresh_buffer(clock):
    store = ExpiringStore(refresh_buffer=timedelta(minutes=5), clock=clock)
    store.set("conn-1", "tok", clock.now + timedelta(minutes=10))

    assert store.get("conn-1") == "tok"
    clock.advance(4 * 60)
    assert store.get("conn-1") == "tok"
    clock.advance(60)
    assert store.get("conn-1") is None
    # Still held until swept
    assert len(store) == 1


def test_sweep_removes_only_expired_entries(clock):
    store = ExpiringStore(clock=clock)
    store.set("old", "a", clock.now + timedelta(seconds=30))
    store.set("new", "b", clock.now + timedelta(hours=1))

    assert store.sweep() == 0
    clock.advance(31)
    assert store.sweep() == 1
    assert len(store) == 1
    assert store.get("new") == "b"


def test_delete_and_missing_keys(clock):
    store = ExpiringStore(clock=clock)
    store.set("k", "v", clock.now + timedelta(hours=1))
    store.delete("k")
    store.delete("never-set")

    assert store.get("k") is None


def test_naive_expiry_is_treated_as_utc(clock):
    store = ExpiringStore(clock=clock)
    store.set("k", "v", (clock.now + timedelta(hours=1)).replace(tzinfo=None))

    assert store.get("k") == "v"


@pytest.mark.asyncio
async def test_installation_tokens_are_minted_once_until_near_expiry(clock):
    mint = AsyncMock(side_effect=[("tok-1", clock.now + timedelta(hours=1)), ("tok-2", clock.now + timedelta(hours=2))])
    cache = InstallationTokenCache(mint, ExpiringStore(clock=clock))

    assert await cache.get_token("conn-1") == "tok-1"
    assert await cache.get_token("conn-1") == "tok-1"
    assert mint.await_count == 1

    clock.advance(56 * 60)
    assert await cache.get_token("conn-1") == "tok-2"
    mint.assert_awaited_with("conn-1")


@pytest.mark.asyncio
async def test_invalidate_forces_new_token(clock):
    mint = AsyncMock(return_value=("tok", clock.now + timedelta(hours=1)))
    cache = InstallationTokenCache(mint, ExpiringStore(clock=clock))

    await cache.get_token("conn-1")
    cache.invalidate("conn-1")
    await cache.get_token("conn-1")

    assert mint.await_count == 2

"""Expiring in-memory store for per-connection installation tokens."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from factorygraph.graph.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: datetime


class ExpiringStore(Generic[T]):
    """
    Key/value store whose entries stop being served shortly before they expire.

    - ``get`` returns None once ``expires_at - now`` is within ``refresh_buffer``
    - ``sweep`` drops entries that have fully expired; nothing is evicted otherwise
    """

    def __init__(self, *, refresh_buffer: timedelta = timedelta(minutes=5), clock: Clock = utcnow):
        self.refresh_buffer = refresh_buffer
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at - self._clock() <= self.refresh_buffer:
            return None
        return entry.value

    def set(self, key: str, value: T, expires_at: datetime) -> None:
        self._entries[key] = _Entry(value=value, expires_at=as_utc(expires_at))

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


TokenMinter = Callable[[str], Awaitable[tuple[str, datetime]]]


class InstallationTokenCache:
    """Serve cached installation tokens, minting a new one when near expiry."""

    def __init__(self, mint: TokenMinter, store: ExpiringStore[str] | None = None):
        self._mint = mint
        self.store: ExpiringStore[str] = store if store is not None else ExpiringStore()

    async def get_token(self, connection_id: str) -> str:
        token = self.store.get(connection_id)
        if token is not None:
            return token

        token, expires_at = await self._mint(connection_id)
        self.store.set(connection_id, token, expires_at)
        logger.info(
            "installation_token_minted",
            extra={"connection_id": connection_id, "expires_at": as_utc(expires_at).isoformat()},
        )
        return token

    def invalidate(self, connection_id: str) -> None:
        self.store.delete(connection_id)

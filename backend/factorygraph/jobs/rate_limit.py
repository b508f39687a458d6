"""Sliding-window limiter for job starts."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class SlidingWindowRateLimiter:
    """
    Allow at most ``max_events`` starts in any ``window_seconds`` span.

    Strategy:
    - Remember the timestamp of every start still inside the window
    - A new start is allowed while fewer than ``max_events`` remain
    - Otherwise refuse until the oldest one falls out of the window
    """

    def __init__(
        self,
        max_events: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_events <= 0:
            raise ValueError("max_events must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._events and now - self._events[0] >= self.window_seconds:
            self._events.popleft()

    def time_until_available(self) -> float:
        """Seconds until another start is allowed (0 when one is allowed now)."""
        now = self._clock()
        self._evict(now)
        if len(self._events) < self.max_events:
            return 0.0
        return max(self._events[0] + self.window_seconds - now, 0.0)

    def try_acquire(self) -> bool:
        if self.time_until_available() > 0:
            return False
        self._events.append(self._clock())
        return True

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._events)

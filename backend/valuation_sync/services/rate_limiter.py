"""Sliding-window request limiter for the shared price endpoint.

Instances are constructed by the caller and handed to every client that should
share the budget, so there is no process-wide limiter state.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable, Deque

from valuation_sync.config import AppSettings


class RateLimiter:
    """Allow at most ``max_requests`` acquisitions per ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._stamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RateLimiter":
        return cls(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    def _evict(self, now: float) -> None:
        while self._stamps and now - self._stamps[0] >= self.window_seconds:
            self._stamps.popleft()

    def remaining(self) -> int:
        self._evict(self._clock())
        return self.max_requests - len(self._stamps)

    def retry_after(self) -> float:
        """Seconds until the next slot frees up, ``0.0`` if one is free now."""

        now = self._clock()
        self._evict(now)
        if len(self._stamps) < self.max_requests:
            return 0.0
        return max(self._stamps[0] + self.window_seconds - now, 0.0)

    def try_acquire(self) -> bool:
        now = self._clock()
        self._evict(now)
        if len(self._stamps) >= self.max_requests:
            return False
        self._stamps.append(now)
        return True

    async def acquire(self) -> None:
        """Wait until a slot is free, then take it."""

        async with self._lock:
            while not self.try_acquire():
                await asyncio.sleep(self.retry_after())


__all__ = ["RateLimiter"]

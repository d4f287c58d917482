"""Async token bucket for outbound API requests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable


class RateLimiter:
    """Token bucket shared by every request of one API client.

    ``requests_per_minute`` tokens accrue per minute, up to a burst of a
    tenth of that (at least one). Waiters queue on a lock and are served in
    arrival order; each one sleeps exactly until its token is due instead of
    polling. A rate of 0 or less disables limiting.
    """

    def __init__(
        self,
        requests_per_minute: float = 200.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.requests_per_minute = requests_per_minute
        self.enabled = requests_per_minute > 0
        self.capacity = max(1.0, requests_per_minute / 10) if self.enabled else 0.0
        self.rate = requests_per_minute / 60.0 if self.enabled else 0.0
        self.waits = 0
        self._clock = clock
        self._tokens = self.capacity
        self._updated = clock()
        self._queue = asyncio.Lock()

    @property
    def available(self) -> float:
        """Tokens that could be spent right now."""
        self._refill()
        return self._tokens

    async def acquire(self, timeout: float = 60.0) -> bool:
        """Take one token, waiting up to ``timeout`` seconds. False on timeout."""
        if not self.enabled:
            return True

        deadline = self._clock() + timeout
        try:
            await asyncio.wait_for(self._queue.acquire(), timeout)
        except asyncio.TimeoutError:
            return False

        try:
            self._refill()
            if self._tokens < 1.0:
                delay = (1.0 - self._tokens) / self.rate
                if self._clock() + delay > deadline:
                    return False
                self.waits += 1
                await asyncio.sleep(delay)
                self._refill()
            self._tokens -= 1.0
            return True
        finally:
            self._queue.release()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

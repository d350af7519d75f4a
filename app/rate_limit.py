"""Token bucket limiter shared by every outbound provider call."""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Async token bucket.

    ``acquire`` waits until a token is available. Waiting happens in
    ``asyncio.sleep`` so a cancelled caller stops waiting immediately and
    never consumes a token.
    """

    def __init__(self, rate_per_second: float, burst: int = 1):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self._rate = float(rate_per_second)
        self._capacity = float(max(1, burst))
        self._tokens = self._capacity
        self._updated_at = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated_at
        self._updated_at = now
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self._rate)

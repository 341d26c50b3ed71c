"""
rate_limiter.py — Token bucket for outbound classification requests.

The bucket starts full, so the first wave leaves immediately. After that,
tokens come back at a steady rate and callers wait their turn. Waiters are
served one at a time under a lock, so bursts never exceed capacity.

clock and sleep are injectable; tests drive the bucket with a fake clock
and never really sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if refill_per_second < 0:
            raise ValueError("refill_per_second must be >= 0")
        self.capacity = float(capacity)
        self.refill_per_second = float(refill_per_second)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = None

    @property
    def unlimited(self) -> bool:
        return self.refill_per_second == 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._last_refill = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> float:
        """Take one token, waiting if needed. Returns seconds spent waiting."""
        if self.unlimited:
            return 0.0
        if self._lock is None:
            # created lazily so the bucket can be built outside a running loop
            self._lock = asyncio.Lock()

        waited = 0.0
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                delay = (1.0 - self._tokens) / self.refill_per_second
                logger.debug(f"Rate limit: waiting {delay:.2f}s for a request slot")
                await self._sleep(delay)
                waited += delay
                self._refill()
            self._tokens -= 1.0
        return waited

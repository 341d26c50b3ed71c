"""
scheduler.py — Wave-based dispatch of batch workers.

Batches go out in waves of `wave_size`. Every batch in a wave starts at
once and the wave is awaited as a whole before the next one starts. The
scheduler owns the token bucket: each dispatched batch takes a token, so
a full wave drains the bucket and the next wave waits for it to refill.
Workers that retry take extra tokens through `throttle()`.

Ordering: results come back one per batch, in dispatch order. Putting
comments back in input order is the aggregator's job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from pipeline.config import DEFAULT_WAVE_INTERVAL, DEFAULT_WAVE_SIZE
from pipeline.rate_limiter import TokenBucket

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WaveScheduler:
    def __init__(
        self,
        wave_size: int = DEFAULT_WAVE_SIZE,
        limiter: Optional[TokenBucket] = None,
    ):
        if wave_size < 1:
            raise ValueError("wave_size must be >= 1")
        self.wave_size = wave_size
        if limiter is None:
            limiter = TokenBucket(wave_size, wave_size / DEFAULT_WAVE_INTERVAL)
        self.limiter = limiter

    async def throttle(self) -> float:
        """Take one request slot from the shared budget."""
        return await self.limiter.acquire()

    async def run(self, items: Sequence[T], worker: Callable[[T], Awaitable[R]]) -> List[R]:
        """Run worker over items, wave by wave. One result per item, in dispatch order."""
        results: List[R] = []
        total_waves = (len(items) + self.wave_size - 1) // self.wave_size

        for wave_number, start in enumerate(range(0, len(items), self.wave_size), start=1):
            wave = items[start:start + self.wave_size]
            wave_start = time.monotonic()
            logger.info(f"Dispatching wave {wave_number}/{total_waves} ({len(wave)} batch(es))")

            tasks = []
            for item in wave:
                await self.throttle()
                tasks.append(asyncio.ensure_future(worker(item)))
            results.extend(await asyncio.gather(*tasks))

            logger.debug(f"Wave {wave_number}/{total_waves} finished in {time.monotonic() - wave_start:.1f}s")

        return results

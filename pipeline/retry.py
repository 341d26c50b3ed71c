"""
retry.py — Bounded retry loop with exponential backoff and a fallback.

State machine per unit of work:

    Attempting(0) ──fail──▶ wait backoff(0) ──▶ Attempting(1) ── ... ──▶ Attempting(max_retries)
         │                                                                    │
       success                                                              fail
         ▼                                                                    ▼
     Succeeded                                                         FallbackApplied

Only RetryableError subclasses are retried. Anything else is a bug and
propagates. The fallback must not fail; it is what turns "the service is
down" into a complete, lower-confidence result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from pipeline.config import DEFAULT_BACKOFF_BASE, DEFAULT_BACKOFF_CAP, DEFAULT_MAX_RETRIES
from pipeline.contracts import BatchState, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    base_seconds: float = DEFAULT_BACKOFF_BASE
    cap_seconds: float = DEFAULT_BACKOFF_CAP

    def delay(self, attempt: int) -> float:
        """Wait after failed attempt number `attempt` (0-based)."""
        return min(self.base_seconds * (2 ** attempt), self.cap_seconds)


@dataclass
class RetryOutcome(Generic[T]):
    value: T
    state: BatchState
    attempts: int
    last_error: Optional[str] = None


class RetryController:
    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: Optional[BackoffPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep

    async def run(
        self,
        attempt: Callable[[int], Awaitable[T]],
        fallback: Callable[[], T],
        label: str = "task",
    ) -> RetryOutcome[T]:
        """
        Call attempt(n) for n = 0..max_retries until one succeeds.

        Returns a Succeeded outcome with the attempt's value, or a
        FallbackApplied outcome with fallback()'s value after
        max_retries + 1 failed attempts.
        """
        last_error: Optional[str] = None
        for n in range(self.max_retries + 1):
            try:
                value = await attempt(n)
            except RetryableError as e:
                last_error = f"{type(e).__name__}: {e}"
                if n < self.max_retries:
                    delay = self.backoff.delay(n)
                    logger.warning(
                        f"{label} attempt {n + 1}/{self.max_retries + 1} failed ({last_error}); "
                        f"retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue
                logger.error(
                    f"{label} failed after {n + 1} attempt(s) ({last_error}); applying fallback"
                )
                break
            if n > 0:
                logger.info(f"{label} succeeded on attempt {n + 1}")
            return RetryOutcome(value, BatchState.SUCCEEDED, n + 1, last_error)

        return RetryOutcome(fallback(), BatchState.FALLBACK_APPLIED, self.max_retries + 1, last_error)

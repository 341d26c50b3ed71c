import asyncio

import pytest

from pipeline.contracts import BatchState, ClassificationTransportError, ResponseParseError
from pipeline.retry import BackoffPolicy, RetryController

from tests.fakes import FakeClock


def test_backoff_doubles_and_caps():
    policy = BackoffPolicy(base_seconds=1.0, cap_seconds=30.0)
    assert [policy.delay(n) for n in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_exhausted_retries_apply_fallback():
    clock = FakeClock()
    calls = []

    async def attempt(n):
        calls.append(n)
        raise ClassificationTransportError("boom")

    controller = RetryController(max_retries=3, backoff=BackoffPolicy(1.0, 30.0), sleep=clock.sleep)
    outcome = asyncio.run(controller.run(attempt, fallback=lambda: "fallback"))

    assert calls == [0, 1, 2, 3]
    assert outcome.state == BatchState.FALLBACK_APPLIED
    assert outcome.value == "fallback"
    assert outcome.attempts == 4
    assert "boom" in outcome.last_error
    # no wait after the final attempt
    assert clock.sleeps == [1.0, 2.0, 4.0]


def test_success_on_a_later_attempt():
    clock = FakeClock()

    async def attempt(n):
        if n < 2:
            raise ResponseParseError("no json")
        return "ok"

    controller = RetryController(max_retries=3, sleep=clock.sleep)
    outcome = asyncio.run(controller.run(attempt, fallback=lambda: pytest.fail("fallback used")))

    assert outcome.state == BatchState.SUCCEEDED
    assert outcome.value == "ok"
    assert outcome.attempts == 3
    assert clock.sleeps == [1.0, 2.0]


def test_first_attempt_success_does_not_sleep():
    clock = FakeClock()

    async def attempt(n):
        return n

    outcome = asyncio.run(RetryController(sleep=clock.sleep).run(attempt, fallback=lambda: -1))
    assert outcome.value == 0
    assert outcome.attempts == 1
    assert outcome.last_error is None
    assert clock.sleeps == []


def test_non_retryable_errors_propagate():
    clock = FakeClock()

    async def attempt(n):
        raise KeyError("programming error")

    controller = RetryController(max_retries=3, sleep=clock.sleep)
    with pytest.raises(KeyError):
        asyncio.run(controller.run(attempt, fallback=lambda: None))
    assert clock.sleeps == []


def test_negative_max_retries_rejected():
    with pytest.raises(ValueError):
        RetryController(max_retries=-1)

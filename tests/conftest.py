from __future__ import annotations

import pytest

from pipeline.batching import ingest_comments
from pipeline.config import PipelineConfig

from tests.fakes import FakeClock, make_raw_comments


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_config() -> PipelineConfig:
    return PipelineConfig(
        batch_size=20,
        max_retries=3,
        wave_size=3,
        wave_interval_seconds=2.0,
        backoff_base_seconds=1.0,
        backoff_cap_seconds=30.0,
        call_timeout_seconds=5.0,
    )


@pytest.fixture
def comments_45():
    return ingest_comments(make_raw_comments(45))

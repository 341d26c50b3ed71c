"""
config.py — Canonical pipeline configuration.

One set of knobs for batching, retrying and pacing. Values come from
environment variables (a .env file is loaded by the entry points) and
fall back to the defaults below.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# ──────────────────────────────────────────────────────────────
# Defaults
# ──────────────────────────────────────────────────────────────
DEFAULT_BATCH_SIZE = 20
DEFAULT_MAX_RETRIES = 3
DEFAULT_WAVE_SIZE = 3              # concurrent batches per wave
DEFAULT_WAVE_INTERVAL = 2.0        # seconds for the bucket to refill one wave
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 30.0
DEFAULT_MAX_TEXT_LENGTH = 500      # chars of comment text sent per entry
DEFAULT_CALL_TIMEOUT = 90.0        # seconds before one service call is abandoned


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""
    pass


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class PipelineConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    wave_size: int = DEFAULT_WAVE_SIZE
    wave_interval_seconds: float = DEFAULT_WAVE_INTERVAL
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE
    backoff_cap_seconds: float = DEFAULT_BACKOFF_CAP
    max_text_length: int = DEFAULT_MAX_TEXT_LENGTH
    call_timeout_seconds: Optional[float] = DEFAULT_CALL_TIMEOUT

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigError("batch_size must be >= 1")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.wave_size < 1:
            raise ConfigError("wave_size must be >= 1")
        if self.wave_interval_seconds < 0:
            raise ConfigError("wave_interval_seconds must be >= 0")
        if self.backoff_base_seconds < 0 or self.backoff_cap_seconds < 0:
            raise ConfigError("backoff values must be >= 0")
        if self.max_text_length < 1:
            raise ConfigError("max_text_length must be >= 1")
        if self.call_timeout_seconds is not None and self.call_timeout_seconds <= 0:
            raise ConfigError("call_timeout_seconds must be > 0")

    @property
    def requests_per_second(self) -> float:
        """Sustained request rate allowed by the wave settings (0 = unlimited)."""
        if self.wave_interval_seconds == 0:
            return 0.0
        return self.wave_size / self.wave_interval_seconds

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Build a config from SENTIMENT_* environment variables."""
        if env is None:
            env = os.environ
        timeout = _env_float(env, "SENTIMENT_CALL_TIMEOUT", DEFAULT_CALL_TIMEOUT)
        return cls(
            batch_size=_env_int(env, "SENTIMENT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            max_retries=_env_int(env, "SENTIMENT_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            wave_size=_env_int(env, "SENTIMENT_WAVE_SIZE", DEFAULT_WAVE_SIZE),
            wave_interval_seconds=_env_float(env, "SENTIMENT_WAVE_INTERVAL", DEFAULT_WAVE_INTERVAL),
            backoff_base_seconds=_env_float(env, "SENTIMENT_BACKOFF_BASE", DEFAULT_BACKOFF_BASE),
            backoff_cap_seconds=_env_float(env, "SENTIMENT_BACKOFF_CAP", DEFAULT_BACKOFF_CAP),
            max_text_length=_env_int(env, "SENTIMENT_MAX_TEXT_LENGTH", DEFAULT_MAX_TEXT_LENGTH),
            call_timeout_seconds=timeout if timeout > 0 else None,
        )

"""
gemini_client.py — Gemini-backed classification service with key rotation.

Provides:
  - A pool of sentiment keys with round-robin selection
  - 5-minute cooldown on keys that hit 429 / quota errors
  - GeminiClassificationService: ONE async generate call per invocation,
    returning raw text. Retries live in pipeline.retry, not here.
  - Safe logging (keys are never printed)

SAFETY:
  - Keys are read from environment variables only
  - Actual key values are NEVER logged or printed
  - Every SDK failure surfaces as ClassificationTransportError
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from google import genai
from google.genai import types

from pipeline.contracts import ClassificationTransportError

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

COOLDOWN_SECONDS = 300  # 5 minutes
DEFAULT_MODEL_NAME = "gemini-2.5-flash"
SENTIMENT_TEMPERATURE = 0.1
MAX_OUTPUT_TOKENS = 4000

# Key pool, read from environment variables:
# GEMINI_SENTIMENT_KEY_1 .. GEMINI_SENTIMENT_KEY_5, or GEMINI_API_KEY


def load_keys(prefix: str, max_keys: int = 5, env: Optional[Mapping[str, str]] = None) -> List[str]:
    """Load API keys from environment variables with given prefix."""
    if env is None:
        env = os.environ
    keys = []
    for i in range(1, max_keys + 1):
        key = env.get(f"{prefix}_{i}", "").strip()
        if key:
            keys.append(key)
    # Also check a single non-numbered key
    single = env.get(prefix, "").strip()
    if single and single not in keys:
        keys.insert(0, single)
    if not keys:
        generic = env.get("GEMINI_API_KEY", "").strip()
        if generic:
            keys = [generic]
    return keys


# ──────────────────────────────────────────────────────────────
# Key Pool Manager
# ──────────────────────────────────────────────────────────────

@dataclass
class _KeySlot:
    key: str
    uses: int = 0
    failed_at: Optional[float] = None


class KeyPool:
    """
    Round-robin rotation over classification keys.

    A key that hits a quota error sits out for cooldown_seconds; rotation
    skips it until then. Slots are reported by position (key_1, key_2, ...)
    so stats can be served without exposing key values.
    """

    def __init__(
        self,
        pool_name: str,
        keys: List[str],
        cooldown_seconds: float = COOLDOWN_SECONDS,
        clock=time.monotonic,
    ):
        self.pool_name = pool_name
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._slots = [_KeySlot(k) for k in keys]
        self._cursor = 0
        logger.info(f"KeyPool '{pool_name}': {len(self._slots)} key(s) loaded")

    @property
    def size(self) -> int:
        return len(self._slots)

    def _cooling(self, slot: _KeySlot) -> bool:
        return slot.failed_at is not None and self._clock() - slot.failed_at < self.cooldown_seconds

    def get_next_key(self) -> Optional[str]:
        """Next key not in cooldown, or None when every key is cooling down."""
        for step in range(self.size):
            position = (self._cursor + step) % self.size
            slot = self._slots[position]
            if self._cooling(slot):
                continue
            self._cursor = (position + 1) % self.size
            slot.uses += 1
            logger.debug(f"KeyPool '{self.pool_name}': key #{position + 1} (use {slot.uses})")
            return slot.key

        if self._slots:
            logger.warning(f"KeyPool '{self.pool_name}': all {self.size} key(s) cooling down")
        return None

    def mark_failed(self, key: str) -> None:
        for position, slot in enumerate(self._slots):
            if slot.key == key:
                slot.failed_at = self._clock()
                logger.warning(
                    f"KeyPool '{self.pool_name}': key #{position + 1} cooling down "
                    f"for {self.cooldown_seconds:.0f}s"
                )
                return

    def get_stats(self) -> Dict[str, Any]:
        return {
            f"key_{position + 1}": {
                "status": "cooled_down" if self._cooling(slot) else "active",
                "usage_count": slot.uses,
            }
            for position, slot in enumerate(self._slots)
        }


def is_quota_error(error: Exception) -> bool:
    """Check if an error is a 429 / quota error."""
    error_str = str(error).lower()
    return any(keyword in error_str for keyword in [
        "429", "quota", "rate limit", "resource_exhausted",
        "too many requests", "rate_limit",
    ])


# ──────────────────────────────────────────────────────────────
# Classification service
# ──────────────────────────────────────────────────────────────

class GeminiClassificationService:
    """
    Async ClassificationService backed by the google-genai SDK.

    Each generate() call picks the next key from the pool and performs
    exactly one request. Quota errors cool the key down so the retry
    controller's next attempt lands on a different one.
    """

    def __init__(
        self,
        pool: Optional[KeyPool] = None,
        model_name: Optional[str] = None,
        temperature: float = SENTIMENT_TEMPERATURE,
    ):
        if pool is None:
            pool = KeyPool("sentiment", load_keys("GEMINI_SENTIMENT_KEY"))
        self.pool = pool
        self.model_name = model_name or os.environ.get("GEMINI_SENTIMENT_MODEL", DEFAULT_MODEL_NAME)
        self.temperature = temperature
        self._clients: Dict[str, genai.Client] = {}

    def _client_for(self, key: str) -> genai.Client:
        client = self._clients.get(key)
        if client is None:
            client = genai.Client(api_key=key)
            self._clients[key] = client
        return client

    async def generate(self, prompt: str, system_instruction: str) -> str:
        if self.pool.size == 0:
            raise ClassificationTransportError(
                "No Gemini API keys configured. Set GEMINI_SENTIMENT_KEY_1 or GEMINI_API_KEY."
            )

        key = self.pool.get_next_key()
        if key is None:
            raise ClassificationTransportError("All Gemini keys are cooling down")

        try:
            response = await self._client_for(key).aio.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=self.temperature,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                    response_mime_type="application/json",
                ),
            )
        except Exception as e:
            if is_quota_error(e):
                logger.warning(f"Gemini quota error: rotating key for '{self.pool.pool_name}'")
                self.pool.mark_failed(key)
            else:
                logger.warning(f"Gemini API error: {type(e).__name__}: {e}")
            raise ClassificationTransportError(f"{type(e).__name__}: {e}") from e

        return (response.text or "") if response is not None else ""

    def get_stats(self) -> Dict[str, Any]:
        return {"model": self.model_name, "keys": self.pool.get_stats()}

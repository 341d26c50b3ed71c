"""
classification_client.py — One classification request per call.

The client is a pure I/O boundary: build the prompt, await the injected
service once, hand back the raw text. No retry, no parsing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from pipeline.config import DEFAULT_CALL_TIMEOUT, DEFAULT_MAX_TEXT_LENGTH
from pipeline.contracts import Batch, ClassificationTransportError
from pipeline.prompt_builder import SENTIMENT_SYSTEM_PROMPT, build_prompt

logger = logging.getLogger(__name__)


class ClassificationService(Protocol):
    """Anything that can turn a prompt into raw reply text."""

    async def generate(self, prompt: str, system_instruction: str) -> str:
        ...


class ClassificationClient:
    def __init__(
        self,
        service: ClassificationService,
        max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
        timeout: Optional[float] = DEFAULT_CALL_TIMEOUT,
    ):
        self.service = service
        self.max_text_length = max_text_length
        self.timeout = timeout

    async def classify(self, batch: Batch) -> str:
        """
        Send one batch and return the service's raw reply.

        Raises:
            ClassificationTransportError: on any service failure or timeout.
        """
        prompt = build_prompt(batch, self.max_text_length)
        logger.debug(f"Batch {batch.batch_number}: sending {len(batch)} comments ({len(prompt)} chars)")
        try:
            call = self.service.generate(prompt, SENTIMENT_SYSTEM_PROMPT)
            if self.timeout is not None:
                raw = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                raw = await call
        except ClassificationTransportError:
            raise
        except asyncio.TimeoutError as e:
            raise ClassificationTransportError(
                f"Classification call timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise ClassificationTransportError(f"{type(e).__name__}: {e}") from e

        if raw is None:
            return ""
        return raw if isinstance(raw, str) else str(raw)

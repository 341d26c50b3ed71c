"""
sentiment_pipeline.py — Batched comment sentiment classification.

Takes an ordered list of comments of any size and returns exactly one
sentiment annotation per comment, in input order, plus a distribution
summary.

ARCHITECTURE:
    ingest → partition (batches of B)
           → WaveScheduler (waves of W, token-bucket paced)
               → RetryController per batch
                   → ClassificationClient (one service call)
                   → response_parser (direct / array_span / object_fragments)
               → on exhausted retries: fallback_classifier (keyword, offline)
           → aggregator (reorder by original_index, distribution)

SAFETY:
    - The pipeline never raises for an individual comment. A dead service
      gives lower-confidence keyword judgments, not errors.
    - The ONLY loud failure is PipelineConsistencyError, raised when the
      merged output does not match the input one-to-one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pipeline.aggregator import compute_distribution, merge_outcomes
from pipeline.batching import ingest_comments, partition_comments
from pipeline.classification_client import ClassificationClient, ClassificationService
from pipeline.config import PipelineConfig
from pipeline.contracts import (
    Batch,
    BatchOutcome,
    BatchState,
    CommentRecord,
    PipelineConsistencyError,
    PipelineResult,
    ResponseParseError,
    SentimentJudgment,
    SOURCE_PLACEHOLDER,
)
from pipeline.fallback_classifier import fallback_judgments
from pipeline.rate_limiter import TokenBucket
from pipeline.response_parser import ParseFailure, align_judgments, parse_response
from pipeline.retry import BackoffPolicy, RetryController
from pipeline.scheduler import WaveScheduler

logger = logging.getLogger(__name__)


class SentimentPipeline:
    """
    Wires the pipeline stages together around one injected service.

    Args:
        service: ClassificationService to call for each batch attempt.
        config: batching / retry / pacing settings.
        sleep: awaitable used for backoff and rate-limit waits.
        clock: monotonic clock for the token bucket.
    """

    def __init__(
        self,
        service: ClassificationService,
        config: Optional[PipelineConfig] = None,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.config = config or PipelineConfig()
        self.client = ClassificationClient(
            service,
            max_text_length=self.config.max_text_length,
            timeout=self.config.call_timeout_seconds,
        )
        self.retry = RetryController(
            max_retries=self.config.max_retries,
            backoff=BackoffPolicy(self.config.backoff_base_seconds, self.config.backoff_cap_seconds),
            sleep=sleep,
        )
        self.scheduler = WaveScheduler(
            wave_size=self.config.wave_size,
            limiter=TokenBucket(
                capacity=self.config.wave_size,
                refill_per_second=self.config.requests_per_second,
                clock=clock,
                sleep=sleep,
            ),
        )

    # ──────────────────────────────────────────────────────────────
    # Per-batch work
    # ──────────────────────────────────────────────────────────────

    async def _attempt(self, batch: Batch, attempt: int) -> List[SentimentJudgment]:
        # first attempt's slot was taken by the scheduler at dispatch
        if attempt > 0:
            await self.scheduler.throttle()

        raw = await self.client.classify(batch)
        result = parse_response(raw)
        if isinstance(result, ParseFailure):
            raise ResponseParseError(result.reason)

        if result.strategy != "direct":
            logger.info(f"Batch {batch.batch_number}: recovered response via '{result.strategy}'")
        return align_judgments(result.items, batch)

    async def process_batch(self, batch: Batch, total_batches: int = 0) -> BatchOutcome:
        label = f"Batch {batch.batch_number}/{total_batches or '?'}"
        logger.info(f"{label}: classifying {len(batch)} comment(s)")

        outcome = await self.retry.run(
            attempt=lambda n: self._attempt(batch, n),
            fallback=lambda: fallback_judgments(batch),
            label=label,
        )

        if outcome.state == BatchState.FALLBACK_APPLIED:
            logger.warning(f"{label}: service unavailable, used keyword fallback for {len(batch)} comment(s)")
        else:
            logger.info(f"{label}: completed ({outcome.attempts} attempt(s))")

        return BatchOutcome(
            batch=batch,
            state=outcome.state,
            judgments=outcome.value,
            attempts=outcome.attempts,
            last_error=outcome.last_error,
        )

    # ──────────────────────────────────────────────────────────────
    # Whole run
    # ──────────────────────────────────────────────────────────────

    async def analyze(self, comments: Sequence[CommentRecord]) -> PipelineResult:
        """Annotate already-ingested comments."""
        started = time.monotonic()
        batches = partition_comments(comments, self.config.batch_size)
        total = len(batches)
        logger.info(
            f"Sentiment pipeline: {len(comments)} comments | {total} batch(es) of <= {self.config.batch_size} | "
            f"wave size {self.config.wave_size} | max retries {self.config.max_retries}"
        )

        outcomes = await self.scheduler.run(batches, lambda b: self.process_batch(b, total))

        annotated = merge_outcomes(comments, outcomes)
        if len(annotated) != len(comments):
            raise PipelineConsistencyError(f"{len(annotated)} annotations for {len(comments)} comments")
        distribution = compute_distribution(a.judgment for a in annotated)

        stats = _run_stats(outcomes, time.monotonic() - started)
        logger.info(
            f"Sentiment pipeline complete — {len(annotated)} comments, "
            f"{stats['batches_succeeded']}/{total} batch(es) via service, "
            f"{stats['batches_fallback']} via fallback, "
            f"{stats['placeholder_judgments']} placeholder(s). "
            f"Runtime: {stats['elapsed_seconds']:.1f}s"
        )
        return PipelineResult(annotated_comments=annotated, distribution=distribution, stats=stats)

    async def analyze_raw(self, raw_comments: Iterable[Dict[str, Any]]) -> PipelineResult:
        """Ingest upstream comment dicts, then annotate them."""
        return await self.analyze(ingest_comments(raw_comments))


def _run_stats(outcomes: List[BatchOutcome], elapsed: float) -> Dict[str, Any]:
    succeeded = [o for o in outcomes if o.state == BatchState.SUCCEEDED]
    return {
        "batches_total": len(outcomes),
        "batches_succeeded": len(succeeded),
        "batches_fallback": len(outcomes) - len(succeeded),
        "attempts_total": sum(o.attempts for o in outcomes),
        "placeholder_judgments": sum(
            1 for o in succeeded for j in o.judgments if j.source == SOURCE_PLACEHOLDER
        ),
        "fallback_batch_numbers": [o.batch_number for o in outcomes if o.state == BatchState.FALLBACK_APPLIED],
        "elapsed_seconds": round(elapsed, 3),
    }


def run_sentiment_pipeline(
    raw_comments: Iterable[Dict[str, Any]],
    service: Optional[ClassificationService] = None,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """
    Synchronous entry point for scripts and the HTTP server.

    Builds the Gemini service from the environment when none is given.
    """
    if service is None:
        from utils.gemini_client import GeminiClassificationService
        service = GeminiClassificationService()
    if config is None:
        config = PipelineConfig.from_env()
    pipeline = SentimentPipeline(service, config)
    return asyncio.run(pipeline.analyze_raw(list(raw_comments)))

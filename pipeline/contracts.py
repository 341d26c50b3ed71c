"""
contracts.py — Data contracts for the sentiment pipeline.

SAFETY DESIGN:
    - Comments are frozen once ingested. original_index is the ONLY key
      used to put results back in order.
    - A judgment ALWAYS carries one of the three sentiment labels and a
      confidence inside [0.1, 1.0]. Construct judgments through
      make_judgment() so both rules are enforced in one place.
    - Every judgment records where it came from (service, placeholder,
      fallback) so degraded runs are visible downstream.

These contracts are the ONLY interface between pipeline stages.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


SENTIMENTS = ("positive", "negative", "neutral")

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
PLACEHOLDER_CONFIDENCE = 0.5
DEFAULT_LANGUAGE = "en"

SOURCE_SERVICE = "service"
SOURCE_PLACEHOLDER = "placeholder"
SOURCE_FALLBACK = "fallback"


class RetryableError(Exception):
    """Base class for failures the retry controller is allowed to retry."""
    pass


class ClassificationTransportError(RetryableError):
    """Raised when the classification service call itself fails."""
    pass


class ResponseParseError(RetryableError):
    """Raised when a service reply could not be turned into judgments."""
    pass


class PipelineConsistencyError(RuntimeError):
    """Raised when merged output does not line up with the input comments."""
    pass


def clamp_confidence(value: Any, default: float = PLACEHOLDER_CONFIDENCE) -> float:
    """Coerce to float and clamp into [MIN_CONFIDENCE, MAX_CONFIDENCE]."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        number = default
    if number != number:  # NaN
        number = default
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, number))


def normalize_sentiment(value: Any) -> str:
    if isinstance(value, str):
        label = value.strip().lower()
        if label in SENTIMENTS:
            return label
    return "neutral"


@dataclass(frozen=True)
class CommentRecord:
    """
    One comment as handed over by the fetch layer.

    RULES:
        - original_index is assigned once, at ingestion, in input order.
        - text may be empty; it is never None.
    """

    id: str
    text: str
    author: str = ""
    like_count: int = 0
    original_index: int = 0
    published_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author,
            "likeCount": self.like_count,
            "originalIndex": self.original_index,
            "publishedAt": self.published_at,
        }


@dataclass(frozen=True)
class Batch:
    """A bounded, ordered slice of the input processed as one request."""

    batch_number: int
    comments: tuple

    def __len__(self) -> int:
        return len(self.comments)

    @property
    def indices(self) -> List[int]:
        return [c.original_index for c in self.comments]


@dataclass(frozen=True)
class SentimentJudgment:
    """Sentiment for a single comment."""

    comment_id: str
    sentiment: str
    confidence: float
    language: str = DEFAULT_LANGUAGE
    reasoning: Optional[str] = None
    keywords: tuple = ()
    source: str = SOURCE_SERVICE

    def to_dict(self) -> dict:
        return {
            "commentId": self.comment_id,
            "sentiment": self.sentiment,
            "confidence": self.confidence,
            "language": self.language,
            "reasoning": self.reasoning,
            "keywords": list(self.keywords),
            "source": self.source,
        }


def make_judgment(
    comment_id: str,
    sentiment: Any,
    confidence: Any,
    language: Any = DEFAULT_LANGUAGE,
    reasoning: Any = None,
    keywords: Any = (),
    source: str = SOURCE_SERVICE,
) -> SentimentJudgment:
    """Build a judgment with every field normalised to the contract."""
    if not isinstance(language, str) or not language.strip():
        language = DEFAULT_LANGUAGE
    if reasoning is not None and not isinstance(reasoning, str):
        reasoning = str(reasoning)
    if isinstance(keywords, (list, tuple)):
        keywords = tuple(k for k in keywords if isinstance(k, str))
    else:
        keywords = ()
    return SentimentJudgment(
        comment_id=comment_id,
        sentiment=normalize_sentiment(sentiment),
        confidence=clamp_confidence(confidence),
        language=language.strip().lower(),
        reasoning=reasoning,
        keywords=keywords,
        source=source,
    )


def placeholder_judgment(comment_id: str) -> SentimentJudgment:
    """Neutral stand-in for an entry the service left out of its reply."""
    return make_judgment(
        comment_id,
        "neutral",
        PLACEHOLDER_CONFIDENCE,
        reasoning="Missing from classifier response",
        source=SOURCE_PLACEHOLDER,
    )


@dataclass(frozen=True)
class AnnotatedComment:
    """A comment merged with its judgment."""

    comment: CommentRecord
    judgment: SentimentJudgment

    @property
    def original_index(self) -> int:
        return self.comment.original_index

    @property
    def sentiment(self) -> str:
        return self.judgment.sentiment

    @property
    def confidence(self) -> float:
        return self.judgment.confidence

    def to_dict(self) -> dict:
        d = self.comment.to_dict()
        j = self.judgment.to_dict()
        j.pop("commentId")
        d.update(j)
        d["detectedLanguage"] = d.pop("language")
        return d


class BatchState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FALLBACK_APPLIED = "fallback_applied"


@dataclass
class BatchOutcome:
    """Terminal result of one batch's retry loop."""

    batch: Batch
    state: BatchState
    judgments: List[SentimentJudgment]
    attempts: int
    last_error: Optional[str] = None

    @property
    def batch_number(self) -> int:
        return self.batch.batch_number


@dataclass
class SentimentDistribution:
    """
    Class counts and percentages over the whole run.

    Percentages are rounded independently and may not add up to 100.
    """

    positive: int = 0
    neutral: int = 0
    negative: int = 0
    total: int = 0

    def pct(self, sentiment: str) -> float:
        if self.total == 0:
            return 0.0
        return round(getattr(self, sentiment) / self.total * 100, 1)

    def to_dict(self) -> dict:
        return {
            "positive": {"count": self.positive, "pct": self.pct("positive")},
            "neutral": {"count": self.neutral, "pct": self.pct("neutral")},
            "negative": {"count": self.negative, "pct": self.pct("negative")},
            "total": self.total,
        }


@dataclass
class PipelineResult:
    """Everything that leaves the pipeline boundary."""

    annotated_comments: List[AnnotatedComment]
    distribution: SentimentDistribution
    stats: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "annotatedComments": [a.to_dict() for a in self.annotated_comments],
            "distribution": self.distribution.to_dict(),
            "stats": dict(self.stats),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False, default=str)

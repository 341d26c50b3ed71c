"""
aggregator.py — Merge per-batch outcomes back into input order.

Batches may finish in any order. Every comment owns one slot, keyed by
original_index, and must be filled exactly once. Anything else means a
stage upstream broke its contract, so it raises PipelineConsistencyError
instead of quietly returning a short or shuffled list.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from pipeline.contracts import (
    AnnotatedComment,
    BatchOutcome,
    CommentRecord,
    PipelineConsistencyError,
    SENTIMENTS,
    SentimentDistribution,
    SentimentJudgment,
)

logger = logging.getLogger(__name__)


def merge_outcomes(
    comments: Sequence[CommentRecord],
    outcomes: Iterable[BatchOutcome],
) -> List[AnnotatedComment]:
    """Annotated comments sorted by original_index, one per input comment."""
    by_index = {c.original_index: c for c in comments}
    if len(by_index) != len(comments):
        raise PipelineConsistencyError("Duplicate original_index values in input comments")
    position = {index: pos for pos, index in enumerate(sorted(by_index))}
    slots: List[Optional[AnnotatedComment]] = [None] * len(comments)

    for outcome in outcomes:
        batch = outcome.batch
        if len(outcome.judgments) != len(batch):
            raise PipelineConsistencyError(
                f"Batch {batch.batch_number}: {len(outcome.judgments)} judgments "
                f"for {len(batch)} comments"
            )
        for comment, judgment in zip(batch.comments, outcome.judgments):
            index = comment.original_index
            if by_index.get(index) != comment:
                raise PipelineConsistencyError(f"Batch {batch.batch_number}: unknown comment at index {index}")
            if judgment.comment_id != comment.id:
                raise PipelineConsistencyError(
                    f"Batch {batch.batch_number}: judgment for {judgment.comment_id!r} "
                    f"attached to comment {comment.id!r}"
                )
            pos = position[index]
            if slots[pos] is not None:
                raise PipelineConsistencyError(f"Comment at index {index} annotated twice")
            slots[pos] = AnnotatedComment(comment=comment, judgment=judgment)

    missing = [index for index, pos in position.items() if slots[pos] is None]
    if missing:
        raise PipelineConsistencyError(
            f"{len(missing)} comment(s) without a judgment (first index: {missing[0]})"
        )
    return slots


def compute_distribution(judgments: Iterable[SentimentJudgment]) -> SentimentDistribution:
    counts = {s: 0 for s in SENTIMENTS}
    for judgment in judgments:
        if judgment.sentiment not in counts:
            raise PipelineConsistencyError(f"Unknown sentiment label {judgment.sentiment!r}")
        counts[judgment.sentiment] += 1
    return SentimentDistribution(
        positive=counts["positive"],
        neutral=counts["neutral"],
        negative=counts["negative"],
        total=sum(counts.values()),
    )

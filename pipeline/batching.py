"""
batching.py — Ingestion and batch partitioning.

Ingestion is the only place original_index is assigned. Partitioning never
reorders or filters: concatenating the batches gives back the input.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Sequence

from pipeline.config import DEFAULT_BATCH_SIZE
from pipeline.contracts import Batch, CommentRecord

logger = logging.getLogger(__name__)

# Accepted aliases for upstream payload keys, first match wins.
_TEXT_KEYS = ("text", "textDisplay", "textOriginal")
_AUTHOR_KEYS = ("author", "authorDisplayName")
_LIKE_KEYS = ("likeCount", "like_count", "likes")
_PUBLISHED_KEYS = ("publishedAt", "published_at")


def _first(raw: Dict[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _to_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def ingest_comments(raw_comments: Iterable[Dict[str, Any]]) -> List[CommentRecord]:
    """
    Turn upstream comment dicts into CommentRecords.

    original_index follows input order. A missing id becomes
    "comment-<index>" and missing text becomes "".
    """
    records: List[CommentRecord] = []
    for index, raw in enumerate(raw_comments):
        text = _first(raw, _TEXT_KEYS, "")
        comment_id = raw.get("id")
        records.append(CommentRecord(
            id=str(comment_id) if comment_id not in (None, "") else f"comment-{index}",
            text=text if isinstance(text, str) else str(text),
            author=str(_first(raw, _AUTHOR_KEYS, "")),
            like_count=_to_int(_first(raw, _LIKE_KEYS, 0)),
            original_index=index,
            published_at=_first(raw, _PUBLISHED_KEYS),
        ))
    return records


def partition_comments(
    comments: Sequence[CommentRecord],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[Batch]:
    """
    Split comments into consecutive batches of at most batch_size.

    Batch numbers start at 1.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    batches = [
        Batch(batch_number=n, comments=tuple(comments[i:i + batch_size]))
        for n, i in enumerate(range(0, len(comments), batch_size), start=1)
    ]
    logger.debug(f"Partitioned {len(comments)} comments into {len(batches)} batch(es) of <= {batch_size}")
    return batches

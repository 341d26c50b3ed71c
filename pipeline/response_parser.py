"""
response_parser.py — Recover judgments from free-text classifier replies.

The service is asked for a JSON array but does not always deliver one.
Replies arrive wrapped in code fences, surrounded by prose, or cut off
mid-array. Parsing is an ordered list of strategies; the first one that
yields at least one object wins:

    1. direct            the whole (fence-stripped) reply is JSON
    2. array_span        first balanced top-level [...] span in the reply
    3. object_fragments  every flat {...} fragment parsed on its own

The parser NEVER raises for bad input. It returns Parsed or ParseFailure
and the caller decides whether to retry or fall back.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pipeline.contracts import (
    Batch,
    SentimentJudgment,
    SOURCE_SERVICE,
    make_judgment,
    placeholder_judgment,
)

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*")
_FLAT_OBJECT = re.compile(r"\{[^{}]*\}")
_LIST_KEYS = ("results", "items", "classifications", "data", "sentiments")


@dataclass(frozen=True)
class Parsed:
    items: List[Dict[str, Any]]
    strategy: str

    ok = True


@dataclass(frozen=True)
class ParseFailure:
    reason: str

    ok = False


ParseResult = Union[Parsed, ParseFailure]


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def _as_items(value: Any) -> Optional[List[Dict[str, Any]]]:
    """Normalize a decoded JSON value to a non-empty list of dicts."""
    if isinstance(value, dict):
        for key in _LIST_KEYS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
        else:
            value = [value] if "sentiment" in value else []
    if not isinstance(value, list):
        return None
    items = [item for item in value if isinstance(item, dict)]
    return items or None


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        # deeply nested replies such as "[[[[..." exhaust the decoder stack
        return None


# ──────────────────────────────────────────────────────────────
# Strategies
# ──────────────────────────────────────────────────────────────

def parse_direct(text: str) -> Optional[List[Dict[str, Any]]]:
    return _as_items(_loads(text))


def _balanced_spans(text: str, open_char: str = "[", close_char: str = "]"):
    """Yield (start, end) for each balanced top-level span, string-aware."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == open_char:
            if depth == 0:
                start = i
            depth += 1
        elif ch == close_char and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, i + 1


def parse_array_span(text: str) -> Optional[List[Dict[str, Any]]]:
    for start, end in _balanced_spans(text):
        items = _as_items(_loads(text[start:end]))
        if items:
            return items
    return None


def parse_object_fragments(text: str) -> Optional[List[Dict[str, Any]]]:
    fragments = _FLAT_OBJECT.findall(text)
    items = [obj for obj in (_loads(f) for f in fragments) if isinstance(obj, dict)]
    if items:
        logger.info(f"Reconstructed {len(items)}/{len(fragments)} object(s) from fragments")
    return items or None


STRATEGIES: Sequence[Tuple[str, Callable[[str], Optional[List[Dict[str, Any]]]]]] = (
    ("direct", parse_direct),
    ("array_span", parse_array_span),
    ("object_fragments", parse_object_fragments),
)


def parse_response(raw: Optional[str]) -> ParseResult:
    """Run the strategy cascade over one raw reply."""
    if raw is None or not raw.strip():
        return ParseFailure("empty response")

    text = strip_code_fences(raw)
    for name, strategy in STRATEGIES:
        items = strategy(text)
        if items:
            return Parsed(items=items, strategy=name)
    return ParseFailure(f"no parseable JSON in response ({len(raw)} chars)")


# ──────────────────────────────────────────────────────────────
# Alignment
# ──────────────────────────────────────────────────────────────

def _item_id(item: Dict[str, Any]) -> Optional[int]:
    value = item.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _index_items(items: List[Dict[str, Any]], size: int) -> Dict[int, Dict[str, Any]]:
    """
    Map batch positions to items.

    Ids are trusted only when every item has a distinct in-range integer
    id; otherwise items are taken in order.
    """
    ids = [_item_id(item) for item in items]
    if all(i is not None and 0 <= i < size for i in ids) and len(set(ids)) == len(ids):
        return dict(zip(ids, items))
    if len(items) > size:
        logger.warning(f"Response has {len(items)} entries for a batch of {size}; extra entries ignored")
    return dict(enumerate(items[:size]))


def align_judgments(items: List[Dict[str, Any]], batch: Batch) -> List[SentimentJudgment]:
    """
    One judgment per comment in the batch, in batch order.

    Comments the reply did not cover get a neutral 0.5 placeholder.
    """
    by_position = _index_items(items, len(batch))
    judgments: List[SentimentJudgment] = []
    for position, comment in enumerate(batch.comments):
        item = by_position.get(position)
        if item is None:
            judgments.append(placeholder_judgment(comment.id))
            continue
        judgments.append(make_judgment(
            comment.id,
            item.get("sentiment"),
            item.get("confidence"),
            language=item.get("language"),
            reasoning=item.get("reasoning"),
            keywords=item.get("keywords", ()),
            source=SOURCE_SERVICE,
        ))

    missing = len(batch) - len(by_position)
    if missing > 0:
        logger.warning(
            f"Batch {batch.batch_number}: {missing}/{len(batch)} entries missing from response, "
            f"filled with neutral placeholders"
        )
    return judgments

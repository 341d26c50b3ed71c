"""
prompt_builder.py — Request payload for the classification service.

Each batch is sent as a compact JSON list of {id, text} pairs. Ids are
positions inside the batch (0..n-1) so the reply can be aligned without
echoing YouTube comment ids back and forth.
"""

from __future__ import annotations

import json
import re
from typing import Dict, List

from pipeline.config import DEFAULT_MAX_TEXT_LENGTH
from pipeline.contracts import Batch

SENTIMENT_SYSTEM_PROMPT = """You are an expert multilingual sentiment analyzer for YouTube comments.
You understand context, sarcasm, and cultural nuances across languages.

POSITIVE: gratitude, praise, excitement, appreciation, support, constructive feedback
NEGATIVE: criticism, complaints, anger, disappointment, frustration, mean comments
NEUTRAL: questions, factual statements, observations, requests, timestamps

For each input item return one object:
  {"id": <same id>, "sentiment": "positive|negative|neutral",
   "confidence": 0.0-1.0, "language": "<ISO 639-1 code>",
   "reasoning": "<short reason>", "keywords": ["..."]}

Return ONLY a JSON array with one object per input item, no markdown.
"""

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Unescape literal \\n / \\t / \\r sequences and collapse whitespace."""
    text = text.replace("\\n", "\n").replace("\\t", "\t").replace("\\r", "\r")
    return _WHITESPACE.sub(" ", text).strip()


def build_batch_payload(batch: Batch, max_text_length: int = DEFAULT_MAX_TEXT_LENGTH) -> List[Dict]:
    return [
        {"id": i, "text": clean_text(c.text)[:max_text_length]}
        for i, c in enumerate(batch.comments)
    ]


def build_prompt(batch: Batch, max_text_length: int = DEFAULT_MAX_TEXT_LENGTH) -> str:
    payload = build_batch_payload(batch, max_text_length)
    return (
        f"Classify the sentiment of these {len(payload)} YouTube comments:\n\n"
        f"{json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}"
    )

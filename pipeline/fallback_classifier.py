"""
fallback_classifier.py — Deterministic keyword sentiment, no network.

This is the last line of defence for the completeness guarantee: when a
batch's retries are exhausted every comment in it goes through
classify_text(). It must return a judgment for ANY input, including
empty strings, and the same text always gets the same judgment.

Rules (first match wins):
    positive hits and no negative hits   → positive, 0.75
    negative hits and no positive hits   → negative, 0.75
    question marker present              → neutral, 0.8
    anything else                        → neutral, 0.6
"""

from __future__ import annotations

import re
from typing import List, Pattern, Sequence, Tuple

from pipeline.contracts import (
    Batch,
    DEFAULT_LANGUAGE,
    SOURCE_FALLBACK,
    SentimentJudgment,
    make_judgment,
)

POLAR_CONFIDENCE = 0.75
QUESTION_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 0.6

# ──────────────────────────────────────────────────────────────
# Language detection
# ──────────────────────────────────────────────────────────────

# Script checks run before word lists. Marathi and Hindi share Devanagari,
# so Marathi-only words are tested first.
_LANGUAGE_PATTERNS: Sequence[Tuple[str, Pattern]] = (
    ("mr", re.compile(r"छान|मस्त|व्हिडिओ|आहे|खूप")),
    ("hi", re.compile(r"[\u0900-\u097F]")),
    ("ar", re.compile(r"[\u0600-\u06FF]")),
    ("ko", re.compile(r"[\uAC00-\uD7AF]")),
    ("ja", re.compile(r"[\u3040-\u309F\u30A0-\u30FF]")),
    ("zh", re.compile(r"[\u4E00-\u9FFF]")),
    ("es", re.compile(r"[¿¡ñ]|\b(?:muy|gracias|hola|bueno|increíble|excelente|también|porque)\b", re.IGNORECASE)),
    ("fr", re.compile(r"\b(?:très|merci|bonjour|c'est|vidéo|génial|vraiment|avec)\b", re.IGNORECASE)),
    ("de", re.compile(r"[ßäöü]|\b(?:sehr|danke|hallo|nicht|diese|wirklich|und)\b", re.IGNORECASE)),
    ("pt", re.compile(r"[ãõç]|\b(?:muito|obrigado|obrigada|olá|vídeo|você)\b", re.IGNORECASE)),
)


def detect_language(text: str) -> str:
    """Best-effort ISO 639-1 code from script ranges and marker words."""
    for language, pattern in _LANGUAGE_PATTERNS:
        if pattern.search(text):
            return language
    return DEFAULT_LANGUAGE


# ──────────────────────────────────────────────────────────────
# Keyword lists
# ──────────────────────────────────────────────────────────────

POSITIVE_KEYWORDS = (
    # English
    "good", "great", "awesome", "amazing", "perfect", "love", "like", "thanks",
    "thank you", "excellent", "fantastic", "wonderful", "brilliant", "helpful",
    "useful", "best",
    # Hindi / Marathi
    "धन्यवाद", "छान", "मस्त", "अच्छा", "शानदार", "कमाल",
    # Spanish
    "bueno", "excelente", "gracias", "perfecto", "increíble",
    # French
    "très bien", "merci", "parfait", "incroyable", "génial",
    # German / Portuguese
    "danke", "toll", "super", "obrigado", "obrigada", "ótimo",
    # Emojis
    "👍", "❤", "😍", "🔥", "💯", "⭐", "🙌", "👏", "💪", "✨",
)

NEGATIVE_KEYWORDS = (
    # English
    "bad", "terrible", "awful", "hate", "dislike", "worst", "horrible",
    "useless", "boring", "stupid", "sucks", "waste", "disappointed",
    "disappointing",
    # Hindi / Marathi
    "बुरा", "खराब", "गंदा", "बकवास",
    # Spanish
    "malo", "odio",
    # French
    "mauvais", "déteste", "nul",
    # German / Portuguese
    "schlecht", "langweilig", "ruim", "péssimo",
    # Emojis
    "👎", "😡", "😤", "💩", "🤮", "😞", "😭",
)

QUESTION_MARKERS = ("?", "¿", "कैसे", "क्या")


def _keyword_pattern(keyword: str) -> Pattern:
    # Whole-word match for Latin-script words; raw substring for scripts
    # without word spacing and for emoji.
    if re.fullmatch(r"[a-zà-ÿ' ]+", keyword):
        return re.compile(r"(?<![\w])" + re.escape(keyword) + r"(?![\w])")
    return re.compile(re.escape(keyword))


_POSITIVE = [(k, _keyword_pattern(k)) for k in POSITIVE_KEYWORDS]
_NEGATIVE = [(k, _keyword_pattern(k)) for k in NEGATIVE_KEYWORDS]


def _hits(text: str, patterns) -> Tuple[int, List[str]]:
    count = 0
    matched: List[str] = []
    for keyword, pattern in patterns:
        n = len(pattern.findall(text))
        if n:
            count += n
            matched.append(keyword)
    return count, matched


# ──────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────

def classify_text(text: str, comment_id: str = "") -> SentimentJudgment:
    """Keyword-based judgment for one comment. Total and deterministic."""
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    lowered = text.lower()
    language = detect_language(text)

    pos_count, pos_words = _hits(lowered, _POSITIVE)
    neg_count, neg_words = _hits(lowered, _NEGATIVE)
    is_question = any(marker in lowered for marker in QUESTION_MARKERS)

    if pos_count and not neg_count:
        sentiment, confidence = "positive", POLAR_CONFIDENCE
    elif neg_count and not pos_count:
        sentiment, confidence = "negative", POLAR_CONFIDENCE
    elif is_question:
        sentiment, confidence = "neutral", QUESTION_CONFIDENCE
    else:
        sentiment, confidence = "neutral", DEFAULT_CONFIDENCE

    return make_judgment(
        comment_id,
        sentiment,
        confidence,
        language=language,
        reasoning=f"Keyword-based fallback analysis ({pos_count} positive, {neg_count} negative)",
        keywords=pos_words + neg_words,
        source=SOURCE_FALLBACK,
    )


def fallback_judgments(batch: Batch) -> List[SentimentJudgment]:
    return [classify_text(c.text, c.id) for c in batch.comments]

import json

from pipeline.batching import ingest_comments, partition_comments
from pipeline.contracts import SOURCE_PLACEHOLDER, SOURCE_SERVICE
from pipeline.response_parser import (
    ParseFailure,
    Parsed,
    align_judgments,
    parse_response,
    strip_code_fences,
)

from tests.fakes import make_raw_comments

ITEMS = [
    {"id": 0, "sentiment": "positive", "confidence": 0.92, "language": "en"},
    {"id": 1, "sentiment": "negative", "confidence": 0.81, "language": "hi"},
    {"id": 2, "sentiment": "neutral", "confidence": 0.7, "language": "es"},
]
CLEAN = json.dumps(ITEMS)


def _batch(n=3):
    return partition_comments(ingest_comments(make_raw_comments(n)), batch_size=n)[0]


def test_clean_array_uses_direct_strategy():
    result = parse_response(CLEAN)
    assert isinstance(result, Parsed)
    assert result.strategy == "direct"
    assert [i["sentiment"] for i in result.items] == ["positive", "negative", "neutral"]


def test_fenced_array_still_parses_directly():
    result = parse_response(f"```json\n{CLEAN}\n```")
    assert isinstance(result, Parsed)
    assert result.strategy == "direct"


def test_fences_and_prose_use_array_span():
    raw = f"Sure! Here are the results:\n```json\n{CLEAN}\n```\nLet me know [if] you need more."
    result = parse_response(raw)
    assert isinstance(result, Parsed)
    assert result.strategy == "array_span"
    assert len(result.items) == 3


def test_array_span_skips_unparseable_bracket_prose():
    raw = f"Note [see below]: {CLEAN}"
    result = parse_response(raw)
    assert isinstance(result, Parsed)
    assert result.strategy == "array_span"
    assert len(result.items) == 3


def test_truncated_array_is_reconstructed_from_objects():
    raw = CLEAN[:-1].rsplit("{", 1)[0] + '{"id": 2, "sentiment": "neu'
    result = parse_response(raw)
    assert isinstance(result, Parsed)
    assert result.strategy == "object_fragments"
    assert [i["id"] for i in result.items] == [0, 1]


def test_objects_with_keyword_lists_survive_reconstruction():
    raw = '[{"id": 0, "sentiment": "positive", "confidence": 0.9, "keywords": ["great", "thanks"]}, {"id": 1, "sent'
    result = parse_response(raw)
    assert isinstance(result, Parsed)
    assert result.items[0]["keywords"] == ["great", "thanks"]


def test_garbage_fails():
    result = parse_response("I'm sorry, I cannot help with that request.")
    assert isinstance(result, ParseFailure)
    assert not result.ok


def test_empty_and_whitespace_fail():
    assert isinstance(parse_response(""), ParseFailure)
    assert isinstance(parse_response("   \n\t "), ParseFailure)
    assert isinstance(parse_response(None), ParseFailure)


def test_empty_array_is_a_failure():
    assert isinstance(parse_response("[]"), ParseFailure)


def test_wrapped_results_object_is_accepted():
    result = parse_response(json.dumps({"results": ITEMS}))
    assert isinstance(result, Parsed)
    assert len(result.items) == 3


def test_strip_code_fences():
    assert strip_code_fences("```json\n[1]\n```") == "[1]"
    assert strip_code_fences("```\n[1]\n```") == "[1]"


def test_align_fills_missing_entries_with_placeholders():
    batch = _batch(5)
    judgments = align_judgments(ITEMS[:2], batch)
    assert len(judgments) == 5
    assert [j.comment_id for j in judgments] == ["c0", "c1", "c2", "c3", "c4"]
    assert [j.source for j in judgments] == [SOURCE_SERVICE] * 2 + [SOURCE_PLACEHOLDER] * 3
    for j in judgments[2:]:
        assert j.sentiment == "neutral"
        assert j.confidence == 0.5


def test_align_uses_ids_when_complete_and_distinct():
    batch = _batch(3)
    shuffled = [ITEMS[2], ITEMS[0]]
    judgments = align_judgments(shuffled, batch)
    assert judgments[0].sentiment == "positive"
    assert judgments[1].source == SOURCE_PLACEHOLDER
    assert judgments[2].sentiment == "neutral"
    assert judgments[2].language == "es"


def test_align_falls_back_to_position_when_ids_unusable():
    batch = _batch(2)
    items = [
        {"id": 7, "sentiment": "negative", "confidence": 0.8},
        {"sentiment": "positive", "confidence": 0.8},
    ]
    judgments = align_judgments(items, batch)
    assert [j.sentiment for j in judgments] == ["negative", "positive"]


def test_align_normalizes_bad_fields():
    batch = _batch(3)
    items = [
        {"id": 0, "sentiment": "VERY POSITIVE", "confidence": 7},
        {"id": 1, "sentiment": None, "confidence": "high", "keywords": "nope"},
        {"id": 2, "sentiment": "Negative", "confidence": -1, "language": ""},
    ]
    judgments = align_judgments(items, batch)
    assert [j.sentiment for j in judgments] == ["neutral", "neutral", "negative"]
    assert [j.confidence for j in judgments] == [1.0, 0.5, 0.1]
    assert judgments[1].keywords == ()
    assert judgments[2].language == "en"


def test_align_ignores_extra_entries():
    batch = _batch(2)
    items = [{"sentiment": "positive"}] * 4
    assert len(align_judgments(items, batch)) == 2


def test_deeply_nested_reply_is_a_failure_not_a_crash():
    assert isinstance(parse_response("[" * 5000), ParseFailure)
    assert isinstance(parse_response("[" * 5000 + "]" * 5000), ParseFailure)


def test_align_ignores_non_ascii_digit_ids():
    batch = _batch(2)
    items = [
        {"id": "¹", "sentiment": "positive", "confidence": 0.9},
        {"id": "²", "sentiment": "negative", "confidence": 0.9},
    ]
    judgments = align_judgments(items, batch)
    assert [j.sentiment for j in judgments] == ["positive", "negative"]


def test_align_clamps_huge_confidence():
    batch = _batch(1)
    judgments = align_judgments([{"id": 0, "sentiment": "positive", "confidence": 10 ** 400}], batch)
    assert judgments[0].confidence == 0.5

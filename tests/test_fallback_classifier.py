import pytest

from pipeline.batching import ingest_comments, partition_comments
from pipeline.contracts import SOURCE_FALLBACK
from pipeline.fallback_classifier import classify_text, detect_language, fallback_judgments


def test_positive_only():
    j = classify_text("Great video, thanks!", "c1")
    assert j.sentiment == "positive"
    assert j.confidence == 0.75
    assert j.keywords == ("great", "thanks")
    assert j.comment_id == "c1"
    assert j.source == SOURCE_FALLBACK
    assert j.reasoning == "Keyword-based fallback analysis (2 positive, 0 negative)"


def test_negative_only():
    j = classify_text("This is the worst, I hate it")
    assert j.sentiment == "negative"
    assert j.confidence == 0.75
    assert set(j.keywords) == {"worst", "hate"}


def test_question_is_neutral():
    j = classify_text("How do you do this?")
    assert j.sentiment == "neutral"
    assert j.confidence == 0.8


def test_mixed_signals_are_neutral():
    assert classify_text("good start but bad ending").confidence == 0.6
    assert classify_text("good start but bad ending?").confidence == 0.8
    assert classify_text("good start but bad ending").sentiment == "neutral"


def test_empty_text():
    j = classify_text("", "empty")
    assert j.sentiment == "neutral"
    assert j.confidence == 0.6
    assert j.language == "en"
    assert j.keywords == ()


def test_none_text_is_treated_as_empty():
    assert classify_text(None).sentiment == "neutral"


def test_keywords_match_whole_words_only():
    j = classify_text("goodbye everyone, badminton later")
    assert j.sentiment == "neutral"
    assert j.keywords == ()


def test_emoji_hits_are_counted():
    j = classify_text("🔥🔥🔥")
    assert j.sentiment == "positive"
    assert j.reasoning.endswith("(3 positive, 0 negative)")


def test_deterministic():
    text = "बहुत अच्छा वीडियो, धन्यवाद"
    assert classify_text(text, "x") == classify_text(text, "x")


@pytest.mark.parametrize("text,language,sentiment", [
    ("बहुत अच्छा वीडियो, धन्यवाद", "hi", "positive"),
    ("खूप छान व्हिडिओ", "mr", "positive"),
    ("Muy bueno, gracias", "es", "positive"),
    ("¿Cómo se hace esto?", "es", "neutral"),
    ("C'est vraiment génial, merci", "fr", "positive"),
    ("Das ist sehr schlecht", "de", "negative"),
    ("Muito obrigado pelo vídeo", "pt", "positive"),
])
def test_multilingual(text, language, sentiment):
    j = classify_text(text)
    assert j.language == language
    assert j.sentiment == sentiment


@pytest.mark.parametrize("text,language", [
    ("شكرا جزيلا", "ar"),
    ("정말 좋아요", "ko"),
    ("すごいですね", "ja"),
    ("非常好", "zh"),
    ("nice video", "en"),
    ("", "en"),
])
def test_detect_language(text, language):
    assert detect_language(text) == language


def test_fallback_judgments_cover_the_batch():
    raw = [{"id": f"c{i}", "text": t} for i, t in enumerate(["love it", "awful", "when is part 2?"])]
    batch = partition_comments(ingest_comments(raw), batch_size=3)[0]

    judgments = fallback_judgments(batch)

    assert [j.comment_id for j in judgments] == ["c0", "c1", "c2"]
    assert [j.sentiment for j in judgments] == ["positive", "negative", "neutral"]
    assert all(j.source == SOURCE_FALLBACK for j in judgments)

import pytest

from pipeline.batching import ingest_comments, partition_comments

from tests.fakes import make_raw_comments


def test_ingest_assigns_original_index_in_input_order():
    records = ingest_comments(make_raw_comments(5))
    assert [r.original_index for r in records] == [0, 1, 2, 3, 4]
    assert records[3].id == "c3"
    assert records[3].author == "user3"
    assert records[3].like_count == 3


def test_ingest_accepts_upstream_key_aliases():
    raw = [
        {"id": "yt1", "textDisplay": "display text", "authorDisplayName": "Ann", "likes": "7"},
        {"textOriginal": "original text", "like_count": None, "publishedAt": "2024-01-01T00:00:00Z"},
        {},
    ]
    records = ingest_comments(raw)

    assert records[0].text == "display text"
    assert records[0].author == "Ann"
    assert records[0].like_count == 7
    assert records[1].id == "comment-1"
    assert records[1].text == "original text"
    assert records[1].like_count == 0
    assert records[1].published_at == "2024-01-01T00:00:00Z"
    assert records[2].text == ""


def test_partition_sizes():
    batches = partition_comments(ingest_comments(make_raw_comments(45)), batch_size=20)
    assert [len(b) for b in batches] == [20, 20, 5]
    assert [b.batch_number for b in batches] == [1, 2, 3]


def test_partition_preserves_order_and_membership():
    comments = ingest_comments(make_raw_comments(45))
    batches = partition_comments(comments, batch_size=7)
    flattened = [c for b in batches for c in b.comments]
    assert flattened == comments
    assert batches[1].indices == list(range(7, 14))


def test_partition_exact_multiple_and_single():
    comments = ingest_comments(make_raw_comments(40))
    assert [len(b) for b in partition_comments(comments, 20)] == [20, 20]
    assert [len(b) for b in partition_comments(comments[:1], 20)] == [1]


def test_partition_empty():
    assert partition_comments([], 20) == []


def test_partition_rejects_non_positive_size():
    with pytest.raises(ValueError):
        partition_comments(ingest_comments(make_raw_comments(3)), batch_size=0)

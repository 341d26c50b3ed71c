import json

import pytest

from pipeline import run_pipeline
from pipeline.contracts import PipelineConsistencyError
from pipeline.sentiment_pipeline import run_sentiment_pipeline

from tests.fakes import ScriptedService, make_raw_comments, payload_from_prompt, reply_for


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_load_comments_file_accepts_list_and_wrapped(tmp_path):
    raw = make_raw_comments(3)
    assert run_pipeline.load_comments_file(_write(tmp_path / "a.json", raw)) == raw
    wrapped = {"health": {"status": "healthy"}, "comments": raw + ["junk"]}
    assert run_pipeline.load_comments_file(_write(tmp_path / "b.json", wrapped)) == raw


def test_load_comments_file_rejects_other_shapes(tmp_path):
    with pytest.raises(ValueError):
        run_pipeline.load_comments_file(_write(tmp_path / "c.json", {"items": []}))


@pytest.fixture
def scripted(monkeypatch):
    service = ScriptedService(lambda prompt, n: reply_for(payload_from_prompt(prompt), sentiment="positive"))

    def fake_run(comments, config=None):
        return run_sentiment_pipeline(comments, service=service, config=config)

    monkeypatch.setenv("SENTIMENT_WAVE_INTERVAL", "0")
    monkeypatch.setattr(run_pipeline, "run_sentiment_pipeline", fake_run)
    return service


def test_main_writes_latest_json(tmp_path, scripted):
    input_path = _write(tmp_path / "comments.json", make_raw_comments(25))
    out_dir = tmp_path / "out"

    code = run_pipeline.main(["--input", input_path, "--output-dir", str(out_dir)])

    assert code == 0
    data = json.loads((out_dir / "latest.json").read_text(encoding="utf-8"))
    assert data["source"] == "comments.json"
    assert len(data["annotatedComments"]) == 25
    assert data["distribution"]["positive"]["count"] == 25
    assert scripted.calls == 2


def test_main_missing_input_returns_1(tmp_path, scripted):
    assert run_pipeline.main(["--input", str(tmp_path / "nope.json"), "--output-dir", str(tmp_path)]) == 1


def test_main_consistency_failure_returns_2_without_output(tmp_path, monkeypatch):
    def broken(comments, service=None, config=None):
        raise PipelineConsistencyError("3 annotations for 4 comments")

    monkeypatch.setattr(run_pipeline, "run_sentiment_pipeline", broken)
    input_path = _write(tmp_path / "comments.json", make_raw_comments(4))

    assert run_pipeline.main(["--input", input_path, "--output-dir", str(tmp_path / "out")]) == 2
    assert not (tmp_path / "out" / "latest.json").exists()


def test_main_failed_fetch_returns_1(tmp_path, monkeypatch):
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
    assert run_pipeline.main(["--video-id", "abc", "--output-dir", str(tmp_path)]) == 1


def test_main_bad_configuration_returns_1(tmp_path, scripted, monkeypatch):
    monkeypatch.setenv("SENTIMENT_MAX_RETRIES", "many")
    input_path = _write(tmp_path / "comments.json", make_raw_comments(2))
    assert run_pipeline.main(["--input", input_path, "--output-dir", str(tmp_path / "out")]) == 1
    assert scripted.calls == 0

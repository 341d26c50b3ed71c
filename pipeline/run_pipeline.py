"""
run_pipeline.py — Command-line runner for the sentiment pipeline.

    FETCH (or LOAD) → INGEST → BATCH → CLASSIFY → MERGE → PUBLISH

Usage:
    python -m pipeline.run_pipeline --input comments.json
    python -m pipeline.run_pipeline --video-id dQw4w9WgXcQ --max-comments 300

Exit codes:
    0  annotated output written (even if some batches used the fallback)
    1  no input could be loaded or fetched, or the configuration is invalid
    2  internal consistency failure — output NOT written
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

from fetcher.youtube_comments import DEFAULT_MAX_COMMENTS, fetch_video_comments
from pipeline.config import ConfigError, PipelineConfig
from pipeline.contracts import PipelineConsistencyError, PipelineResult
from pipeline.sentiment_pipeline import run_sentiment_pipeline
from utils.logger import Logger, setup_logging

DEFAULT_OUTPUT_DIR = os.path.join(os.path.dirname(__file__), "..", "data", "sentiment")


def load_comments_file(path: str) -> List[dict]:
    """
    Read comments from a JSON file.

    Accepts a bare list, {"comments": [...]} or a saved FetchResult.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("comments")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of comments or an object with a 'comments' list")
    return [c for c in data if isinstance(c, dict)]


def write_output(result: PipelineResult, output_dir: str, source: str) -> str:
    output_dir = os.path.abspath(output_dir)
    os.makedirs(output_dir, exist_ok=True)

    payload = result.to_dict()
    payload["source"] = source
    payload["generated_at"] = datetime.now(timezone.utc).isoformat()

    output_path = os.path.join(output_dir, "latest.json")
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
    return output_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Batched YouTube comment sentiment analysis")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="JSON file with comments")
    source.add_argument("--video-id", help="YouTube video id to fetch comments for")
    parser.add_argument("--max-comments", type=int, default=DEFAULT_MAX_COMMENTS)
    parser.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR)
    args = parser.parse_args(argv)

    setup_logging()
    log = Logger(name="Pipeline")
    log.info("═══════════════════════════════════════════════════")
    log.info("  Comment Sentiment — Pipeline Start")
    log.info("═══════════════════════════════════════════════════")

    if args.input:
        try:
            comments = load_comments_file(args.input)
        except (OSError, ValueError) as e:
            log.error(f"Cannot load comments: {e}")
            return 1
        source_label = os.path.basename(args.input)
    else:
        fetched = fetch_video_comments(args.video_id, max_comments=args.max_comments)
        if fetched.health.status == "failed":
            log.error(f"Comment fetch failed: {fetched.health.error_message}")
            return 1
        if not fetched.health.is_healthy():
            log.warning(f"Comment fetch degraded: {fetched.health.error_message}")
        comments = fetched.comments
        source_label = f"youtube:{args.video_id}"

    log.info(f"Loaded {len(comments)} comment(s) from {source_label}")

    try:
        config = PipelineConfig.from_env()
    except ConfigError as e:
        log.error(f"Invalid configuration: {e}")
        return 1

    try:
        result = run_sentiment_pipeline(comments, config=config)
    except PipelineConsistencyError as e:
        log.error(f"PIPELINE ABORT: internal consistency failure — {e}")
        return 2

    output_path = write_output(result, args.output_dir, source_label)
    dist = result.distribution
    log.info("═══════════════════════════════════════════════════")
    log.info(f"  Comments:  {dist.total}")
    log.info(f"  Positive:  {dist.positive} ({dist.pct('positive')}%)")
    log.info(f"  Neutral:   {dist.neutral} ({dist.pct('neutral')}%)")
    log.info(f"  Negative:  {dist.negative} ({dist.pct('negative')}%)")
    log.info(f"  Output:    {output_path}")
    log.info("═══════════════════════════════════════════════════")
    return 0


if __name__ == "__main__":
    sys.exit(main())

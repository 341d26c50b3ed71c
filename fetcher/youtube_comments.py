"""
youtube_comments.py — Top-level comment fetcher for one YouTube video.

Uses the public YouTube Data API v3 `commentThreads` endpoint with an API
key (no OAuth). Pages through results until max_comments is reached or
the API runs out of pages.

SAFETY DESIGN:
    - Every request has an explicit timeout.
    - Transient failures (connection errors, 429, 5xx) are retried with
      exponential backoff. Other 4xx responses fail immediately: a bad key
      or a video with comments disabled will not fix itself.
    - An error after at least one page returns what was collected with a
      "degraded" health report instead of throwing it away.
    - The API key travels in the query string, so it is scrubbed from every
      error message before that message is logged or stored.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from fetcher.contracts import FetchError, FetchHealthReport, FetchResult

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# Configuration constants
# ──────────────────────────────────────────────────────────────
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
REQUEST_TIMEOUT_SEC = 15
MAX_RETRIES = 3
RETRY_BACKOFF_BASE_SEC = 2.0
PAGE_SIZE = 100  # API maximum for commentThreads
DEFAULT_MAX_COMMENTS = 200

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _redact(message: str, params: Dict[str, Any]) -> str:
    """Replace the API key in an error message (requests errors echo the URL)."""
    key = params.get("key")
    if key:
        message = message.replace(str(key), "***")
    return message


def _parse_thread(item: Dict[str, Any]) -> Dict[str, Any]:
    snippet = item.get("snippet", {}).get("topLevelComment", {}).get("snippet", {})
    return {
        "id": item.get("id", ""),
        "text": snippet.get("textOriginal") or snippet.get("textDisplay") or "",
        "author": snippet.get("authorDisplayName", ""),
        "likeCount": snippet.get("likeCount") or 0,
        "publishedAt": snippet.get("publishedAt"),
    }


def get_with_retry(
    session: requests.Session,
    url: str,
    params: Dict[str, Any],
    retries: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    GET a JSON document with retry + exponential backoff.

    Raises FetchError if all retries are exhausted or the API rejects
    the request outright.
    """
    last_error: Optional[str] = None
    for attempt in range(1, retries + 1):
        try:
            resp = session.get(url, params=params, timeout=REQUEST_TIMEOUT_SEC)
        except requests.RequestException as e:
            last_error = _redact(f"{type(e).__name__}: {e}", params)
            logger.warning(f"YouTube request failed on attempt {attempt}/{retries}: {last_error}")
        else:
            if resp.status_code == 200:
                return resp.json()
            last_error = f"HTTP {resp.status_code}"
            if resp.status_code not in _RETRYABLE_STATUS:
                raise FetchError(_redact(f"YouTube API returned {resp.status_code}: {resp.text[:200]}", params))
            logger.warning(f"YouTube API returned {resp.status_code} on attempt {attempt}/{retries}")

        if attempt < retries:
            backoff = RETRY_BACKOFF_BASE_SEC ** attempt
            logger.info(f"Retrying in {backoff:.1f}s...")
            sleep(backoff)

    raise FetchError(f"YouTube API unreachable after {retries} attempts: {last_error}")


def fetch_video_comments(
    video_id: str,
    api_key: Optional[str] = None,
    max_comments: int = DEFAULT_MAX_COMMENTS,
    order: str = "relevance",
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FetchResult:
    """
    Fetch up to max_comments top-level comments for a video.

    Returns a FetchResult whose comments are ready for
    pipeline.batching.ingest_comments().
    """
    start = time.monotonic()
    api_key = api_key or os.environ.get("YOUTUBE_API_KEY", "").strip()
    comments: List[dict] = []
    pages = 0

    def _report(status: str, error: Optional[str] = None) -> FetchHealthReport:
        return FetchHealthReport(
            source="youtube_data_api",
            video_id=video_id,
            comments_fetched=len(comments),
            pages_fetched=pages,
            status=status,
            error_message=error,
            duration_seconds=round(time.monotonic() - start, 2),
        )

    if not api_key:
        logger.error("YOUTUBE_API_KEY is not set — cannot fetch comments")
        return FetchResult(comments=[], health=_report("failed", "YOUTUBE_API_KEY is not set"))

    session = session or requests.Session()
    page_token: Optional[str] = None

    while len(comments) < max_comments:
        params = {
            "part": "snippet",
            "videoId": video_id,
            "order": order,
            "maxResults": min(PAGE_SIZE, max_comments - len(comments)),
            "textFormat": "plainText",
            "key": api_key,
        }
        if page_token:
            params["pageToken"] = page_token

        try:
            data = get_with_retry(session, f"{YOUTUBE_API_BASE}/commentThreads", params, sleep=sleep)
        except FetchError as e:
            status = "degraded" if comments else "failed"
            logger.error(f"[{video_id}] Comment fetch {status}: {e}")
            return FetchResult(comments=comments, health=_report(status, str(e)))

        pages += 1
        items = data.get("items") or []
        comments.extend(_parse_thread(item) for item in items)
        page_token = data.get("nextPageToken")
        logger.debug(f"[{video_id}] Page {pages}: {len(items)} comments (total {len(comments)})")
        if not page_token or not items:
            break

    comments = comments[:max_comments]
    logger.info(f"[{video_id}] Fetched {len(comments)} comment(s) in {pages} page(s)")
    return FetchResult(comments=comments, health=_report("healthy"))

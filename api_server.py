"""
api_server.py — Lightweight API server for comment sentiment.

Serves:
  POST /api/sentiment  → annotate comments (inline list or fetched by video id)
  GET  /api/health     → key pool health check

Usage:
  python api_server.py
  → Starts on http://localhost:8080

SAFETY:
  - Request size is capped (MAX_COMMENTS_PER_REQUEST)
  - API keys never leave the server
  - A degraded classifier still yields a 200 with fallback judgments
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import json
import logging
import os
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Optional
from urllib.parse import urlparse

from fetcher.youtube_comments import fetch_video_comments
from pipeline.config import ConfigError, PipelineConfig
from pipeline.contracts import PipelineConsistencyError
from pipeline.sentiment_pipeline import run_sentiment_pipeline
from utils.gemini_client import GeminiClassificationService
from utils.logger import setup_logging

logger = logging.getLogger(__name__)

PORT = int(os.environ.get("PORT", 8080))
MAX_COMMENTS_PER_REQUEST = int(os.environ.get("MAX_COMMENTS_PER_REQUEST", 1000))

_service: Optional[GeminiClassificationService] = None


def get_service() -> GeminiClassificationService:
    global _service
    if _service is None:
        _service = GeminiClassificationService()
    return _service


class SentimentHandler(BaseHTTPRequestHandler):
    """Routes the two API endpoints."""

    def do_POST(self):
        parsed = urlparse(self.path)

        if parsed.path == "/api/sentiment":
            self._handle_sentiment()
        else:
            self._json_response({"error": "Not Found"}, 404)

    def do_GET(self):
        parsed = urlparse(self.path)

        if parsed.path == "/api/health":
            self._handle_health()
        else:
            self._json_response({"error": "Not Found"}, 404)

    def _handle_sentiment(self):
        """Handle POST /api/sentiment — {"comments": [...]} or {"videoId": "..."}."""
        try:
            content_length = int(self.headers.get("Content-Length", 0))
            data = json.loads(self.rfile.read(content_length) or b"{}")
        except (ValueError, json.JSONDecodeError):
            self._json_response({"error": "Invalid JSON"}, 400)
            return

        if not isinstance(data, dict):
            self._json_response({"error": "Expected a JSON object"}, 400)
            return

        comments = data.get("comments")
        video_id = data.get("videoId") or ""
        if not isinstance(video_id, str):
            self._json_response({"error": "'videoId' must be a string"}, 400)
            return
        video_id = video_id.strip()

        if comments is None and video_id:
            fetched = fetch_video_comments(video_id, max_comments=MAX_COMMENTS_PER_REQUEST)
            if fetched.health.status == "failed":
                self._json_response({"error": f"Could not fetch comments: {fetched.health.error_message}"}, 502)
                return
            comments = fetched.comments

        if not isinstance(comments, list):
            self._json_response({"error": "Provide 'comments' (list) or 'videoId'"}, 400)
            return
        if len(comments) > MAX_COMMENTS_PER_REQUEST:
            self._json_response({"error": f"Too many comments (max {MAX_COMMENTS_PER_REQUEST})"}, 400)
            return

        comments = [c for c in comments if isinstance(c, dict)]
        try:
            config = PipelineConfig.from_env()
        except ConfigError as e:
            logger.error(f"Invalid sentiment configuration: {e}")
            self._json_response({"error": "Server misconfigured"}, 500)
            return

        try:
            result = run_sentiment_pipeline(comments, service=get_service(), config=config)
        except PipelineConsistencyError as e:
            logger.error(f"Sentiment pipeline consistency failure: {e}")
            self._json_response({"error": "Internal server error"}, 500)
            return

        self._json_response(result.to_dict())

    def _handle_health(self):
        """Handle GET /api/health — pool stats."""
        self._json_response({"status": "ok", "classifier": get_service().get_stats()})

    def _json_response(self, data: dict, status: int = 200):
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, GET, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()
        self.wfile.write(body)

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, GET, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def log_message(self, format, *args):
        """Override to use Python logger instead of stderr."""
        logger.info(f"{self.client_address[0]} - {format % args}")


def main():
    setup_logging()
    logger.info(f"Starting sentiment API server on http://localhost:{PORT}")

    if get_service().pool.size:
        logger.info(f"✓ {get_service().pool.size} Gemini key(s) detected")
    else:
        logger.info("⚠ No Gemini API keys found — every batch will use the keyword fallback")
        logger.info("  Set GEMINI_API_KEY environment variable to enable Gemini classification")

    server = HTTPServer(("", PORT), SentimentHandler)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped.")
        server.server_close()


if __name__ == "__main__":
    main()

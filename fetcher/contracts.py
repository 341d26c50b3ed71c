"""
contracts.py — Data contracts for the comment fetch layer.

SAFETY DESIGN:
    - A fetch ALWAYS returns a FetchResult, never a bare list.
    - The health report tells the caller whether the comment list is
      complete (healthy), cut short by an error (degraded) or empty
      because nothing could be fetched (failed).
    - Comment dicts use the upstream keys the pipeline ingests:
      id, text, author, likeCount, publishedAt.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Optional


class FetchError(Exception):
    """Raised when YouTube cannot be reached after all retries."""
    pass


@dataclass
class FetchHealthReport:
    """
    Every fetch run MUST produce one of these.

    If status == "failed" the comment list is empty and the caller should
    report the error instead of running sentiment on nothing.
    """

    source: str
    video_id: str
    comments_fetched: int
    pages_fetched: int
    status: str  # "healthy" | "degraded" | "failed"
    error_message: Optional[str] = None
    duration_seconds: float = 0.0
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FetchResult:
    comments: List[dict]
    health: FetchHealthReport

    def to_dict(self) -> dict:
        return {
            "health": self.health.to_dict(),
            "comments": list(self.comments),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False, default=str)

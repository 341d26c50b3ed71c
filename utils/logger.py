"""
logger.py — Logging setup shared by the CLI and the API server.

Logs go to stdout only. There is no file handler: the server runs under a
process manager and the CLI under CI, both of which capture stdout.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional


def setup_logging(level: Optional[int] = None) -> None:
    """
    Configure the root logger once.

    The level defaults to LOG_LEVEL from the environment (INFO if unset).
    Calling this again is a no-op.
    """
    root = logging.getLogger()

    # Prevent duplicate handlers on re-init
    if root.handlers:
        return

    if level is None:
        level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(name)-28s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    # google-genai and urllib3 are chatty at INFO
    for noisy in ("httpx", "urllib3", "google_genai"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


class Logger:
    """Thin wrapper for named loggers, used by the CLI banner output."""

    def __init__(self, name: str = "CommentSentiment"):
        setup_logging()
        self.logger = logging.getLogger(name)

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def debug(self, msg: str) -> None:
        self.logger.debug(msg)

"""Logging configuration for the tile server process."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str | int = "INFO") -> None:
    """Configure the root logger once with a plain text handler on stdout.

    Later calls only adjust the level.

    Args:
        level: Level name (``"DEBUG"``, ``"info"``...) or number. Unknown
            names fall back to INFO.
    """
    global _configured

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True

"""Logging setup for the budgetfx service."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from budgetfx.settings import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
QUIET_LOGGERS = ("uvicorn.access",)


def resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> int:
    """Route budgetfx logs to stdout at the configured level; returns that level."""
    resolved = resolve_level(level or get_settings().log_level)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    logging.getLogger("budgetfx").setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return resolved

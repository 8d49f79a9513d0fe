"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Dict, Optional

from budgetfx.conversion_client import parse_rate_overrides
from budgetfx.currency import normalize_currency
from budgetfx.session import DEFAULT_MAX_SESSIONS

FALLBACK_CURRENCY = "USD"


@dataclass(frozen=True)
class Settings:
    default_currency: str = FALLBACK_CURRENCY
    conversion_url: Optional[str] = None
    rate_overrides: Dict[str, Decimal] = field(default_factory=dict)
    http_timeout_seconds: float = 8
    telemetry_url: Optional[str] = None
    log_level: str = "INFO"
    max_sessions: int = DEFAULT_MAX_SESSIONS
    frontend_origin: str = "http://localhost:3000"


def load_settings() -> Settings:
    max_sessions = int(os.getenv("BUDGETFX_MAX_SESSIONS", str(DEFAULT_MAX_SESSIONS)))
    if max_sessions < 1:
        raise ValueError("BUDGETFX_MAX_SESSIONS must be at least 1.")
    return Settings(
        default_currency=_default_currency(),
        conversion_url=os.getenv("BUDGETFX_CONVERSION_URL") or None,
        rate_overrides=parse_rate_overrides(os.getenv("BUDGETFX_RATES")),
        http_timeout_seconds=float(os.getenv("BUDGETFX_HTTP_TIMEOUT_SECONDS", "8")),
        telemetry_url=os.getenv("BUDGETFX_TELEMETRY_URL") or None,
        log_level=os.getenv("BUDGETFX_LOG_LEVEL", "INFO"),
        max_sessions=max_sessions,
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def _default_currency() -> str:
    raw = os.getenv("BUDGETFX_DEFAULT_CURRENCY", FALLBACK_CURRENCY)
    try:
        return normalize_currency(raw)
    except ValueError:
        return FALLBACK_CURRENCY

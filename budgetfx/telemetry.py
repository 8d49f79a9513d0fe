"""Fire-and-forget failure reporting."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Union
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ("password", "token", "secret", "key", "auth")
MAX_STRING_LENGTH = 100
MAX_TRUNCATED_LENGTH = 50
HASH_LENGTH = 8
MAX_MESSAGE_LENGTH = 4096

ContextValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class TelemetryReport:
    action: str
    error: BaseException | str
    context: Dict[str, ContextValue] = field(default_factory=dict)
    user_id: Optional[str] = None


class TelemetrySink(Protocol):
    """
    Receiver for failure reports.

    report() is called synchronously by the engine and must return quickly
    without raising.
    """

    def report(self, report: TelemetryReport) -> None:
        ...


class LoggingTelemetrySink:
    """Writes sanitized reports to the application log."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def report(self, report: TelemetryReport) -> None:
        try:
            self._log.warning(format_report(report, include_trace=False))
        except Exception:
            # reporting never propagates into the engine
            pass


class HttpTelemetrySink:
    """Posts formatted reports to a webhook from a daemon thread."""

    def __init__(self, url: str, timeout_seconds: float = 5, include_trace: bool = False):
        self._url = url
        self._timeout = timeout_seconds
        self._include_trace = include_trace

    def report(self, report: TelemetryReport) -> None:
        try:
            message = format_report(report, include_trace=self._include_trace)
            thread = threading.Thread(target=self._send, args=(message,), daemon=True)
            thread.start()
        except Exception:
            logger.exception("Failed to schedule telemetry report for %s", report.action)

    def _send(self, message: str) -> None:
        request = Request(
            self._url,
            data=json.dumps({"message": message}).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout):
                pass
        except (HTTPError, URLError, TimeoutError, OSError) as exc:
            logger.warning("Failed to deliver telemetry report: %s", exc)


class RecordingTelemetrySink:
    """Keeps reports in memory."""

    def __init__(self) -> None:
        self.reports: list[TelemetryReport] = []

    def report(self, report: TelemetryReport) -> None:
        self.reports.append(report)


def safe_report(sink: TelemetrySink | None, report: TelemetryReport) -> None:
    if sink is None:
        return
    try:
        sink.report(report)
    except Exception:
        logger.exception("Telemetry sink raised while reporting %s", report.action)


def format_report(report: TelemetryReport, include_trace: bool = False) -> str:
    user = hash_user_id(report.user_id) if report.user_id else "anonymous"
    timestamp = datetime.now(timezone.utc).isoformat()
    context = sanitize_context(report.context)

    message = f"Error: {report.action}\n\n"
    message += f"User: {user}\n"
    message += f"Time: {timestamp}\n\n"
    message += f"Error:\n{sanitize_error(report.error, include_trace)}\n"
    if context:
        message += f"\nContext:\n{json.dumps(context, indent=2, default=str)}"

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 100] + "\n\n...[MESSAGE TRUNCATED]"
    return message


def sanitize_error(error: BaseException | str, include_trace: bool = False) -> str:
    if not isinstance(error, BaseException):
        return str(error)
    result = str(error) or type(error).__name__
    code = getattr(error, "code", None)
    if code:
        result = f"[{code}] {result}"
    if include_trace and error.__traceback__ is not None:
        result += "\n" + "".join(traceback.format_tb(error.__traceback__))
    return result


def sanitize_context(context: Dict[str, ContextValue] | None) -> Dict[str, ContextValue]:
    if not context:
        return {}
    sanitized: Dict[str, ContextValue] = {}
    for key, value in context.items():
        lower_key = key.lower()
        if any(fragment in lower_key for fragment in SENSITIVE_FIELDS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
            sanitized[key] = value[:MAX_TRUNCATED_LENGTH] + "...[TRUNCATED]"
        else:
            sanitized[key] = value
    return sanitized


def hash_user_id(user_id: str) -> str:
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:HASH_LENGTH]

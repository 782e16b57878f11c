"""
Structured logging for the climb service.

- JSON lines in production/staging, one-line human output elsewhere.
- request_id travels in a ContextVar set by RequestIdMiddleware.
- Admission and AI events carry user/feature/plan context via log_event.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOGGER_NAME = "climb"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Record attributes promoted to top-level keys when set.
_CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "feature",
    "plan",
    "event_type",
    "error_code",
    "status",
    "method",
    "path",
    "latency_bucket",
)
_PRETTY_FIELDS = ("user_id", "feature", "plan", "error_code", "status")
_STRUCTURED_ENVS = {"production", "staging"}


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label; completion calls dominate the upper buckets."""
    if latency_ms is None:
        return "unknown"
    for bound, label in ((10, "<10ms"), (100, "10-100ms"), (1000, "100-1000ms"), (10000, "1-10s")):
        if latency_ms < bound:
            return label
    return ">=10s"


def _utc_iso(record: logging.LogRecord) -> str:
    stamp = datetime.fromtimestamp(record.created, timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _context(record: logging.LogRecord, fields=_CONTEXT_FIELDS) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in fields if getattr(record, name, None) is not None}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_iso(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_context(record))
        details = getattr(record, "details", None)
        if details:
            payload["details"] = details
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        parts = [_utc_iso(record), record.levelname, f"[{LOGGER_NAME}]"]
        if rid:
            parts.append(f"[rid={rid}]")
        parts.append(record.getMessage())
        parts.extend(f"{k}={v}" for k, v in _context(record, _PRETTY_FIELDS).items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() in _STRUCTURED_ENVS else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    # caplog and host loggers still see our records
    logger.propagate = True

    for noisy in ("uvicorn", "uvicorn.error", "httpx"):
        logging.getLogger(noisy).propagate = False


def _clip(value: Any, limit: int = 500) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    try:
        text = value if isinstance(value, str) else str(value)
    except Exception:
        return "<unprintable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    feature: Optional[str] = None,
    plan: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit one structured event on the climb logger.

    Context fields become top-level keys; everything in `extra` is clipped
    and nested under `details` so it can never clash with LogRecord
    attributes.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        # modules used without climb.main (scripts, tests)
        configure_logging(os.getenv("ENV", "development"))

    record_extra: Dict[str, Any] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "feature": feature,
        "plan": plan,
        "event_type": event_type,
        "error_code": error_code,
    }
    if extra:
        record_extra["details"] = {key: _clip(value) for key, value in extra.items()}

    getattr(logger, level, logger.info)(msg, extra=record_extra)

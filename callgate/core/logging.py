"""
Structured logging for callgate.

- "callgate" is the root logger; feature modules log under it via __name__
- JSON lines in production, one-line key=value output elsewhere
- request_id is bound per request (contextvar) and stamped on every record
- Entitlements fields passed through `extra=` (account_id, plan, ...) are
  carried into both formats
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

ROOT_LOGGER = "callgate"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Record attributes copied from `extra=` into the output, in this order
STRUCTURED_FIELDS: Tuple[str, ...] = (
    "account_id",
    "external_id",
    "plan",
    "status",
    "can_call",
    "is_overage",
    "event_type",
    "error_code",
    "method",
    "path",
    "latency_bucket",
    "reset_by",
    "tokens_consumed_before",
)

# Upper bounds (exclusive) for request latency buckets
_LATENCY_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label; raw durations are not logged."""
    if latency_ms is None:
        return "unknown"
    for bound, label in _LATENCY_BUCKETS:
        if latency_ms < bound:
            return label
    return ">=1000ms"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


def _structured_fields(record: logging.LogRecord) -> Dict[str, object]:
    fields = {}
    for key in STRUCTURED_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            fields[key] = value
    return fields


class RequestIdFilter(logging.Filter):
    """Stamp the bound request_id on records that don't carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update(_structured_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """Development output: message followed by the structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        parts = [_timestamp(record), record.levelname, f"[{ROOT_LOGGER}]"]
        if rid:
            parts.append(f"[rid={rid}]")
        parts.append(record.getMessage())
        parts.extend(f"{k}={v}" for k, v in _structured_fields(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: str = "INFO") -> logging.Logger:
    """Install a single stdout handler on the callgate logger. Idempotent."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True
    return logger


def _truncate(value: object, limit: int = 500) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str],
    account_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """
    Log an account-scoped event (resets, ledger corrections, ...).

    Free-form `extra` values are stringified and truncated; the named fields
    are passed through as-is.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        configure_logging()

    payload: Dict[str, object] = {k: _truncate(v) for k, v in (extra or {}).items()}
    payload.update({
        "request_id": request_id or get_request_id(),
        "account_id": account_id,
        "event_type": event_type,
        "error_code": error_code,
    })
    getattr(logger, level, logger.info)(msg, extra=payload)

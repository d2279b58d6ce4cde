"""Structured JSON audit logging for the chat gateway.

Logs go to stdout as JSON lines (12-factor/cloud-native pattern).
Optional file output via AUDIT_LOG_FILE env var.

Structured fields passed as ``extra={"audit_data": {...}}`` are run through
``sanitize_for_logging`` first, so a credential that ends up in a log call
by mistake is written as ``[REDACTED]``.
"""

import json
import logging
import sys
import time
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from contextvars import ContextVar

from chatgate.config.settings import get_settings

# Request-scoped context for correlating log entries
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REDACTED = "[REDACTED]"

# Substring match on the lower-cased field name
SENSITIVE_FIELDS = (
    "password",
    "token",
    "secret",
    "key",
    "authorization",
    "cookie",
    "session",
    "credential",
    "api_key",
    "apikey",
)


def _is_sensitive(name: str) -> bool:
    lowered = name.lower()
    return any(term in lowered for term in SENSITIVE_FIELDS)


def sanitize_for_logging(value):
    """Return a copy of ``value`` with sensitive mapping fields redacted.

    Walks nested mappings and lists. Non-container values are returned
    unchanged; the input is never mutated.
    """
    if isinstance(value, Mapping):
        sanitized = {}
        for name, item in value.items():
            if _is_sensitive(str(name)):
                sanitized[name] = REDACTED
            else:
                sanitized[name] = sanitize_for_logging(item)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize_for_logging(item) for item in value]
    return value


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        # Merge any extra fields passed via `extra={}` kwarg
        if hasattr(record, "audit_data"):
            log_entry.update(sanitize_for_logging(record.audit_data))
        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    """Configure the audit logger with JSON output."""
    settings = get_settings()

    logger = logging.getLogger("chatgate.audit")
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()

    # Always log to stdout
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    # Optional file output
    if settings.audit_log_file:
        file_handler = logging.FileHandler(settings.audit_log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger (avoids duplicate output)
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger("chatgate.audit")


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager to measure request latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

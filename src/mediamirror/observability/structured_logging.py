"""
Structured logging for MediaMirror.

JSON-formatted logging with correlation IDs, so every line a worker emits for
one job can be tied back to that job's remote id.

Usage:
    from mediamirror.observability import add_correlation_id

    with add_correlation_id(job.remote_id):
        logger.info("Resizing")  # Will include correlation_id in JSON logs
"""

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "thread",
        "threadName",
        "taskName",
    }
)


def get_correlation_id() -> str | None:
    """
    Get current correlation ID.

    Returns:
        Correlation ID or None if not set
    """
    return _correlation_id.get()


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Any:
    """
    Context manager to add correlation ID to logs.

    Args:
        correlation_id: Correlation ID (auto-generated if not provided)

    Yields:
        The correlation ID
    """
    cid = correlation_id or str(uuid.uuid4())[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """
    JSON-formatted log formatter with structured fields.

    Includes timestamp, level, logger name, message, correlation ID (if set),
    exception info (if present) and any `extra=` fields passed to the call.
    """

    def __init__(self, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)

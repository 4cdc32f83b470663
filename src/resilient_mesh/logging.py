"""
Logging setup for registry and client processes.

Library modules only call ``logging.getLogger(__name__)``; processes call
``configure_logging`` once at startup to install a handler that stamps the
service name and the current trace context on every record and renders
either JSON lines or a human-readable format.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from opentelemetry import trace

DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(service_name)s] - [%(trace_id)s:%(span_id)s] - "
    "[%(name)s] - %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
    "message",
    "asctime",
    "service_name",
    "trace_id",
    "span_id",
}


class ServiceNameFilter(logging.Filter):
    """Filter to inject service name into log records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name  # type: ignore[attr-defined]
        return True


class TraceContextFilter(logging.Filter):
    """Filter to inject trace context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        current_span = trace.get_current_span()
        span_context = current_span.get_span_context() if current_span else None
        if span_context is not None and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")  # type: ignore[attr-defined]
            record.span_id = format(span_context.span_id, "016x")  # type: ignore[attr-defined]
        else:
            record.trace_id = "0" * 32  # type: ignore[attr-defined]
            record.span_id = "0" * 16  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        trace_id = getattr(record, "trace_id", None)
        if trace_id and trace_id != "0" * 32:
            log_entry["trace_id"] = trace_id
            log_entry["span_id"] = getattr(record, "span_id", None)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Fields passed through ``extra=``
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def configure_logging(
    service_name: str,
    level: str = "INFO",
    json_format: bool = True,
    stream=None,
) -> logging.Handler:
    """Install a single handler on the root logger and return it."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(ServiceNameFilter(service_name))
    handler.addFilter(TraceContextFilter())
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_resilient_mesh", False):
            root.removeHandler(existing)

    handler._resilient_mesh = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))
    return handler

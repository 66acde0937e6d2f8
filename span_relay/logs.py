"""Logging setup for processes that run the pipeline (CLI and bootstrap).

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, on demand.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional, TextIO

from pythonjsonlogger import jsonlogger

from .core.context import get_current_span

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_HANDLER_NAME = "span_relay"


class TraceContextFilter(logging.Filter):
    """Attach the current ``trace_id``/``span_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        span = get_current_span()
        record.trace_id = span.trace_id if span is not None else None
        record.span_id = span.span_id if span is not None else None
        return True


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that emits trace correlation ids when a span is active."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            log_record["trace_id"] = trace_id
            log_record["span_id"] = getattr(record, "span_id", None)
        else:
            log_record.pop("trace_id", None)
            log_record.pop("span_id", None)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def configure_logging(level: str = "INFO", fmt: str = "text", stream: Optional[TextIO] = None) -> logging.Handler:
    """Install (or replace) the span-relay stderr handler on the root logger."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.addFilter(TraceContextFilter())
    if fmt == "json":
        handler.setFormatter(CorrelationJsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))
    return handler

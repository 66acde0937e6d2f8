"""Utility helpers for identifiers and time operations."""

from .ids import is_valid_span_id, is_valid_trace_id, new_span_id, new_trace_id
from .time import ns_to_datetime_naive, ns_to_us, time_ns

__all__ = [
    "new_trace_id",
    "new_span_id",
    "is_valid_trace_id",
    "is_valid_span_id",
    "time_ns",
    "ns_to_us",
    "ns_to_datetime_naive",
]

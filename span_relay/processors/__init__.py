"""Span processors: the policy stage between the tracer and exporters."""

from .base import MultiSpanProcessor, NoopSpanProcessor, SpanProcessor
from .batch import BatchSpanProcessor
from .metrics import MetricsSpanProcessor
from .simple import SimpleSpanProcessor

__all__ = [
    "SpanProcessor",
    "NoopSpanProcessor",
    "MultiSpanProcessor",
    "SimpleSpanProcessor",
    "BatchSpanProcessor",
    "MetricsSpanProcessor",
]

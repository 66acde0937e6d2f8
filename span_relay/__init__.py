"""span-relay package.

A small tracing and metrics pipeline: a span recorder (``Tracer``),
processors that forward or batch finished spans, and exporters that ship
them to Zipkin, PostgreSQL or the console, with Prometheus metrics derived
from span lifecycles.
"""

from .bootstrap import get_tracer, initialize, shutdown
from .config import PipelineConfig
from .core.span import SpanKind, StatusCode
from .core.tracer import Tracer
from .instrument import Instrumentation, instrument, traced

__version__ = "0.1.0"

__all__ = [
    "instrument",
    "traced",
    "Instrumentation",
    "initialize",
    "shutdown",
    "get_tracer",
    "PipelineConfig",
    "Tracer",
    "SpanKind",
    "StatusCode",
]

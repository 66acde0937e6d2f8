"""High-level instrumentation helpers for applications."""

from __future__ import annotations

import functools
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, TypeVar, Union

from .core.metrics import SpanMetrics
from .core.sampling import Sampler
from .core.span import SpanKind
from .core.tracer import Tracer
from .exporters.base import Exporter
from .processors.base import MultiSpanProcessor, NoopSpanProcessor, SpanProcessor
from .processors.batch import BatchSpanProcessor
from .processors.metrics import MetricsSpanProcessor
from .processors.simple import SimpleSpanProcessor

AsyncFn = TypeVar("AsyncFn", bound=Callable[..., Awaitable[Any]])


@dataclass
class Instrumentation:
    """A wired tracer plus the processor chain behind it."""

    tracer: Tracer
    processor: SpanProcessor
    metrics: Optional[SpanMetrics] = None

    async def force_flush(self, timeout_s: Optional[float] = None) -> bool:
        return await self.processor.force_flush(timeout_s)

    async def shutdown(self) -> None:
        await self.processor.shutdown()


def instrument(
    service_name: str,
    *,
    exporter: Optional[Exporter] = None,
    processor: Optional[SpanProcessor] = None,
    sampler: Optional[Sampler] = None,
    batch: bool = True,
    metrics: Optional[SpanMetrics] = None,
) -> Instrumentation:
    """Create a ready-to-use tracer for ``service_name``.

    ``exporter`` is wrapped in a :class:`BatchSpanProcessor` (or a
    :class:`SimpleSpanProcessor` when ``batch`` is False). ``processor`` is
    added as-is, after the exporter-backed one. ``metrics`` adds span-derived
    Prometheus metrics.
    """
    processors: List[SpanProcessor] = []
    if metrics is not None:
        processors.append(MetricsSpanProcessor(metrics))
    if exporter is not None:
        if batch:
            processors.append(BatchSpanProcessor(exporter, metrics=metrics))
        else:
            processors.append(SimpleSpanProcessor(exporter, metrics=metrics))
    if processor is not None:
        processors.append(processor)

    chain: SpanProcessor
    if not processors:
        chain = NoopSpanProcessor()
    elif len(processors) == 1:
        chain = processors[0]
    else:
        chain = MultiSpanProcessor(processors)

    tracer = Tracer(service=service_name, processor=chain, sampler=sampler)
    return Instrumentation(tracer=tracer, processor=chain, metrics=metrics)


def traced(
    tracer: Union[Tracer, AsyncFn, None] = None,
    *,
    name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Decorate a coroutine function so each call runs inside a span.

    Usable bare (``@traced``) or configured (``@traced(tracer, name="x")``).
    Without an explicit tracer the globally initialized one is looked up at
    call time.
    """
    if callable(tracer) and not isinstance(tracer, Tracer):
        return traced(None, name=name, kind=kind, attributes=attributes)(tracer)

    explicit_tracer = tracer

    def decorator(fn: AsyncFn) -> AsyncFn:
        if not inspect.iscoroutinefunction(fn):
            raise TypeError(f"@traced supports coroutine functions only; got {fn!r}.")
        span_name = name or fn.__qualname__

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            active = explicit_tracer
            if active is None:
                from .bootstrap import get_tracer

                active = get_tracer()
            async with active.span(span_name, kind=kind, attributes=attributes):
                return await fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator

"""Tracer implementation: the span recorder for one service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator, Mapping, Optional, Union

from ..utils.ids import new_span_id, new_trace_id
from .context import SAMPLED_FLAG, SpanContext, get_current_span, use_span
from .sampling import ALWAYS_ON, Sampler
from .span import Span, SpanKind, StatusCode, clean_attributes

if TYPE_CHECKING:
    from ..processors.base import SpanProcessor

ParentLike = Union[Span, SpanContext]


class Tracer:
    """Creates spans, tracks the current span and hands finished spans to a processor."""

    def __init__(
        self,
        service: str,
        processor: Optional["SpanProcessor"] = None,
        sampler: Optional[Sampler] = None,
    ) -> None:
        if processor is None:
            from ..processors.base import NoopSpanProcessor

            processor = NoopSpanProcessor()
        self.service = service
        self.processor = processor
        self.sampler = sampler or ALWAYS_ON

    def start_span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Optional[ParentLike] = None,
        attributes: Optional[Mapping[str, Any]] = None,
        start_time_ns: Optional[int] = None,
    ) -> Span:
        """Create a new span, parented on ``parent`` or on the current span."""
        parent_ctx = self._resolve_parent(parent)
        if parent_ctx is not None:
            trace_id = parent_ctx.trace_id
            parent_span_id: Optional[str] = parent_ctx.span_id
            trace_state = parent_ctx.trace_state
        else:
            trace_id = new_trace_id()
            parent_span_id = None
            trace_state = ()

        sampled = self.sampler.should_sample(trace_id, parent_ctx)
        context = SpanContext(
            trace_id=trace_id,
            span_id=new_span_id(),
            trace_flags=SAMPLED_FLAG if sampled else 0,
            trace_state=trace_state,
        )
        span = Span(
            name=name,
            service=self.service,
            context=context,
            kind=kind,
            parent_span_id=parent_span_id,
            attributes=clean_attributes(attributes),
        )
        if start_time_ns is not None:
            span.start_time_ns = start_time_ns
        if sampled:
            self.processor.on_start(span)
        return span

    async def end_span(self, span: Span, end_time_ns: Optional[int] = None) -> Span:
        """Finish ``span`` and deliver it to the processor once."""
        if span.finish(end_time_ns) and span.context.sampled:
            await self.processor.on_end(span)
        return span

    @asynccontextmanager
    async def span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Optional[ParentLike] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> AsyncGenerator[Span, None]:
        """Context-manager helper that makes the new span current for the block."""
        span = self.start_span(name, kind=kind, parent=parent, attributes=attributes)
        try:
            with use_span(span):
                yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}")
            raise
        finally:
            await self.end_span(span)

    @staticmethod
    def _resolve_parent(parent: Optional[ParentLike]) -> Optional[SpanContext]:
        if parent is None:
            current = get_current_span()
            return current.context if current is not None else None
        ctx = parent.context if isinstance(parent, Span) else parent
        return ctx if ctx.is_valid else None

"""Trace context propagation over header carriers (W3C and Zipkin B3)."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from ..errors import ConfigError
from .context import SAMPLED_FLAG, SpanContext, get_current_span
from .span import Span

logger = logging.getLogger(__name__)

TRACEPARENT_HEADER = "traceparent"
TRACESTATE_HEADER = "tracestate"
B3_TRACE_ID_HEADER = "X-B3-TraceId"
B3_SPAN_ID_HEADER = "X-B3-SpanId"
B3_PARENT_SPAN_ID_HEADER = "X-B3-ParentSpanId"
B3_SAMPLED_HEADER = "X-B3-Sampled"
B3_FLAGS_HEADER = "X-B3-Flags"
B3_SINGLE_HEADER = "b3"

MAX_TRACESTATE_MEMBERS = 32

_TRACEPARENT_RE = re.compile(
    r"^\s*(?P<version>[0-9a-f]{2})-(?P<trace_id>[0-9a-f]{32})-(?P<span_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})(?P<rest>-.*)?\s*$"
)
_TRACESTATE_KEY_RE = re.compile(r"^(?:[a-z][_0-9a-z\-\*/]{0,255}|[a-z0-9][_0-9a-z\-\*/]{0,240}@[a-z][_0-9a-z\-\*/]{0,13})$")
_TRACESTATE_VALUE_RE = re.compile(r"^[\x20-\x2b\x2d-\x3c\x3e-\x7e]{0,254}[\x21-\x2b\x2d-\x3c\x3e-\x7e]$")
_B3_ID_RE = re.compile(r"^(?:[0-9a-f]{16}|[0-9a-f]{32})$")

Carrier = Mapping[str, str]


def _get_header(carrier: Carrier, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    value = carrier.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in carrier.items():
        if key.lower() == lowered:
            return candidate
    return None


def parse_tracestate(header: Optional[str]) -> Tuple[Tuple[str, str], ...]:
    """Parse a ``tracestate`` header, skipping malformed members."""
    if not header:
        return ()
    members: List[Tuple[str, str]] = []
    seen = set()
    for raw in header.split(","):
        member = raw.strip()
        if not member:
            continue
        key, sep, value = member.partition("=")
        if not sep or not _TRACESTATE_KEY_RE.match(key) or not _TRACESTATE_VALUE_RE.match(value):
            logger.debug("Skipping malformed tracestate member %r", member)
            continue
        if key in seen:
            continue
        seen.add(key)
        members.append((key, value))
        if len(members) >= MAX_TRACESTATE_MEMBERS:
            break
    return tuple(members)


class Propagator(ABC):
    """Writes and reads a span context to and from a header carrier."""

    @abstractmethod
    def inject(self, carrier: MutableMapping[str, str], context: SpanContext) -> None:
        """Write ``context`` into ``carrier``."""

    @abstractmethod
    def extract(self, carrier: Carrier) -> Optional[SpanContext]:
        """Return the remote span context in ``carrier``, or None."""

    @property
    @abstractmethod
    def fields(self) -> Sequence[str]:
        """Header names this propagator reads and writes."""


class TraceContextPropagator(Propagator):
    """W3C Trace Context ``traceparent``/``tracestate`` headers."""

    def inject(self, carrier: MutableMapping[str, str], context: SpanContext) -> None:
        if not context.is_valid:
            return
        carrier[TRACEPARENT_HEADER] = f"00-{context.trace_id}-{context.span_id}-{context.trace_flags & 0xFF:02x}"
        if context.trace_state:
            carrier[TRACESTATE_HEADER] = context.trace_state_header()

    def extract(self, carrier: Carrier) -> Optional[SpanContext]:
        header = _get_header(carrier, TRACEPARENT_HEADER)
        if not header:
            return None
        match = _TRACEPARENT_RE.match(header)
        if match is None:
            logger.debug("Ignoring malformed traceparent %r", header)
            return None
        version = match.group("version")
        if version == "ff":
            return None
        if version == "00" and match.group("rest"):
            return None
        context = SpanContext(
            trace_id=match.group("trace_id"),
            span_id=match.group("span_id"),
            trace_flags=int(match.group("flags"), 16),
            trace_state=parse_tracestate(_get_header(carrier, TRACESTATE_HEADER)),
            is_remote=True,
        )
        return context if context.is_valid else None

    @property
    def fields(self) -> Sequence[str]:
        return (TRACEPARENT_HEADER, TRACESTATE_HEADER)


class B3Propagator(Propagator):
    """Zipkin B3 headers, multi-header by default or the single ``b3`` header."""

    def __init__(self, single_header: bool = False) -> None:
        self.single_header = single_header

    def inject(self, carrier: MutableMapping[str, str], context: SpanContext) -> None:
        if not context.is_valid:
            return
        sampled = "1" if context.sampled else "0"
        if self.single_header:
            carrier[B3_SINGLE_HEADER] = f"{context.trace_id}-{context.span_id}-{sampled}"
            return
        carrier[B3_TRACE_ID_HEADER] = context.trace_id
        carrier[B3_SPAN_ID_HEADER] = context.span_id
        carrier[B3_SAMPLED_HEADER] = sampled

    def extract(self, carrier: Carrier) -> Optional[SpanContext]:
        single = _get_header(carrier, B3_SINGLE_HEADER)
        if single:
            return self._extract_single(single)

        trace_id = _get_header(carrier, B3_TRACE_ID_HEADER)
        span_id = _get_header(carrier, B3_SPAN_ID_HEADER)
        if not trace_id or not span_id:
            return None
        sampled = _get_header(carrier, B3_SAMPLED_HEADER)
        debug = _get_header(carrier, B3_FLAGS_HEADER) == "1"
        return self._build(trace_id, span_id, sampled, debug=debug)

    def _extract_single(self, header: str) -> Optional[SpanContext]:
        parts = header.strip().split("-")
        if len(parts) < 2:
            # A lone sampling decision ("0", "1", "d") carries no identity.
            return None
        sampled = parts[2] if len(parts) > 2 else None
        return self._build(parts[0], parts[1], sampled, debug=sampled == "d")

    @staticmethod
    def _build(trace_id: str, span_id: str, sampled: Optional[str], *, debug: bool) -> Optional[SpanContext]:
        trace_id = trace_id.strip().lower()
        span_id = span_id.strip().lower()
        if not _B3_ID_RE.match(trace_id) or len(span_id) != 16:
            return None
        if len(trace_id) == 16:
            trace_id = trace_id.rjust(32, "0")
        is_sampled = debug or (sampled or "").strip().lower() in {"1", "true", "d"}
        context = SpanContext(
            trace_id=trace_id,
            span_id=span_id,
            trace_flags=SAMPLED_FLAG if is_sampled else 0,
            is_remote=True,
        )
        return context if context.is_valid else None

    @property
    def fields(self) -> Sequence[str]:
        if self.single_header:
            return (B3_SINGLE_HEADER,)
        return (B3_TRACE_ID_HEADER, B3_SPAN_ID_HEADER, B3_PARENT_SPAN_ID_HEADER, B3_SAMPLED_HEADER, B3_FLAGS_HEADER)


class CompositePropagator(Propagator):
    """Injects with every propagator; extracts with the first that succeeds."""

    def __init__(self, propagators: Iterable[Propagator]) -> None:
        self.propagators: List[Propagator] = list(propagators)

    def inject(self, carrier: MutableMapping[str, str], context: SpanContext) -> None:
        for propagator in self.propagators:
            propagator.inject(carrier, context)

    def extract(self, carrier: Carrier) -> Optional[SpanContext]:
        for propagator in self.propagators:
            context = propagator.extract(carrier)
            if context is not None:
                return context
        return None

    @property
    def fields(self) -> Sequence[str]:
        names: List[str] = []
        for propagator in self.propagators:
            names.extend(name for name in propagator.fields if name not in names)
        return tuple(names)


_PROPAGATORS_BY_NAME = {
    "tracecontext": lambda: TraceContextPropagator(),
    "b3": lambda: B3Propagator(single_header=True),
    "b3multi": lambda: B3Propagator(single_header=False),
}


def propagator_from_names(names: Iterable[str]) -> CompositePropagator:
    """Build a composite propagator from configured names."""
    propagators: List[Propagator] = []
    for name in names:
        factory = _PROPAGATORS_BY_NAME.get(name.strip().lower())
        if factory is None:
            raise ConfigError(
                f"Unknown propagator '{name}'. Expected one of: {', '.join(_PROPAGATORS_BY_NAME)}."
            )
        propagators.append(factory())
    return CompositePropagator(propagators)


_global_propagator: Propagator = CompositePropagator([TraceContextPropagator(), B3Propagator()])


def get_global_propagator() -> Propagator:
    return _global_propagator


def set_global_propagator(propagator: Propagator) -> None:
    global _global_propagator
    _global_propagator = propagator


def inject(carrier: MutableMapping[str, str], span: Optional[Span] = None) -> MutableMapping[str, str]:
    """Inject ``span`` (or the current span) into ``carrier`` and return it."""
    target = span if span is not None else get_current_span()
    if target is not None:
        _global_propagator.inject(carrier, target.context)
    return carrier


def extract(carrier: Carrier) -> Optional[SpanContext]:
    """Extract a remote parent context from ``carrier`` using the global propagator."""
    return _global_propagator.extract(carrier)

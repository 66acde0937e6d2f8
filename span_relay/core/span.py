"""Span model: one timed unit of work with its metadata."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..utils.time import time_ns
from .context import SpanContext

logger = logging.getLogger(__name__)

AttributeScalar = Union[str, bool, int, float]
AttributeValue = Union[AttributeScalar, Sequence[AttributeScalar]]
Attributes = Dict[str, AttributeValue]

_SCALAR_TYPES = (str, bool, int, float)


class SpanKind(str, Enum):
    INTERNAL = "INTERNAL"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class StatusCode(str, Enum):
    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Status:
    code: StatusCode = StatusCode.UNSET
    description: Optional[str] = None


@dataclass(frozen=True)
class Event:
    """A timestamped annotation recorded during a span."""

    name: str
    timestamp_ns: int
    attributes: Attributes = field(default_factory=dict)


def _clean_value(value: Any) -> Optional[AttributeValue]:
    if isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, (list, tuple)):
        if not value:
            return []
        first_type = bool if isinstance(value[0], bool) else type(value[0])
        if first_type not in _SCALAR_TYPES:
            return None
        for item in value:
            item_type = bool if isinstance(item, bool) else type(item)
            if item_type is not first_type:
                return None
        return list(value)
    return None


def clean_attributes(attributes: Optional[Mapping[str, Any]]) -> Attributes:
    """Return a copy of ``attributes`` with invalid keys and values dropped."""
    cleaned: Attributes = {}
    if not attributes:
        return cleaned
    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            logger.warning("Dropping span attribute with invalid key %r", key)
            continue
        clean = _clean_value(value)
        if clean is None:
            logger.warning("Dropping span attribute %r with unsupported value type %s", key, type(value).__name__)
            continue
        cleaned[key] = clean
    return cleaned


@dataclass
class Span:
    """A timed record of one logical operation.

    Spans are created by :class:`~span_relay.core.tracer.Tracer` and become
    read-only once :meth:`finish` has been called.
    """

    name: str
    service: str
    context: SpanContext
    kind: SpanKind = SpanKind.INTERNAL
    parent_span_id: Optional[str] = None
    start_time_ns: int = field(default_factory=time_ns)
    end_time_ns: Optional[int] = None
    attributes: Attributes = field(default_factory=dict)
    events: List[Event] = field(default_factory=list)
    status: Status = field(default_factory=Status)

    @property
    def trace_id(self) -> str:
        return self.context.trace_id

    @property
    def span_id(self) -> str:
        return self.context.span_id

    @property
    def is_recording(self) -> bool:
        return self.end_time_ns is None

    @property
    def duration_ns(self) -> Optional[int]:
        if self.end_time_ns is None:
            return None
        return self.end_time_ns - self.start_time_ns

    def _check_recording(self, operation: str) -> bool:
        if self.end_time_ns is not None:
            logger.debug("Ignoring %s on finished span %s (%s)", operation, self.name, self.span_id)
            return False
        return True

    def set_attribute(self, key: str, value: AttributeValue) -> None:
        if not self._check_recording("set_attribute"):
            return
        self.attributes.update(clean_attributes({key: value}))

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        if not self._check_recording("set_attributes"):
            return
        self.attributes.update(clean_attributes(attributes))

    def add_event(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        timestamp_ns: Optional[int] = None,
    ) -> None:
        if not self._check_recording("add_event"):
            return
        self.events.append(
            Event(
                name=name,
                timestamp_ns=timestamp_ns if timestamp_ns is not None else time_ns(),
                attributes=clean_attributes(attributes),
            )
        )

    def record_exception(self, exc: BaseException, attributes: Optional[Mapping[str, Any]] = None) -> None:
        """Add an ``exception`` event describing ``exc``."""
        event_attributes: Dict[str, Any] = {
            "exception.type": type(exc).__qualname__,
            "exception.message": str(exc),
            "exception.stacktrace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
        if attributes:
            event_attributes.update(attributes)
        self.add_event("exception", event_attributes)

    def set_status(self, code: StatusCode, description: Optional[str] = None) -> None:
        """Set span status; OK is final and UNSET never overrides."""
        if not self._check_recording("set_status"):
            return
        if code == StatusCode.UNSET or self.status.code == StatusCode.OK:
            return
        self.status = Status(code=code, description=description if code == StatusCode.ERROR else None)

    def finish(self, end_time_ns: Optional[int] = None) -> bool:
        """Mark the span as finished. Returns False if it already was."""
        if self.end_time_ns is not None:
            return False
        end = end_time_ns if end_time_ns is not None else time_ns()
        self.end_time_ns = max(end, self.start_time_ns)
        return True

    def to_dict(self) -> dict:
        """Serialize the span for exporters."""
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "service": self.service,
            "name": self.name,
            "kind": self.kind.value,
            "start_time_ns": self.start_time_ns,
            "end_time_ns": self.end_time_ns,
            "duration_ns": self.duration_ns,
            "attributes": dict(self.attributes),
            "events": [
                {"name": e.name, "timestamp_ns": e.timestamp_ns, "attributes": dict(e.attributes)}
                for e in self.events
            ],
            "status_code": self.status.code.value,
            "status_message": self.status.description,
            "sampled": self.context.sampled,
        }

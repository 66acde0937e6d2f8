import asyncio

import pytest

from span_relay.core.context import SpanContext, get_current_span
from span_relay.core.sampling import ALWAYS_OFF
from span_relay.core.span import SpanKind, StatusCode
from span_relay.exporters.memory import InMemorySpanExporter
from span_relay.instrument import instrument
from span_relay.processors.simple import SimpleSpanProcessor
from span_relay.core.tracer import Tracer


def _tracer(exporter: InMemorySpanExporter, **kwargs) -> Tracer:
    return Tracer("unit-test", processor=SimpleSpanProcessor(exporter), **kwargs)


def test_child_span_inherits_trace_and_links_parent() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = _tracer(exporter)

        async with tracer.span("parent") as parent:
            assert get_current_span() is parent
            async with tracer.span("child", kind=SpanKind.CLIENT) as child:
                assert get_current_span() is child
            assert get_current_span() is parent
        assert get_current_span() is None

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == ["child", "parent"]
        assert child.trace_id == parent.trace_id
        assert child.parent_span_id == parent.span_id
        assert parent.parent_span_id is None
        assert child.kind == SpanKind.CLIENT
        assert len(parent.trace_id) == 32 and len(parent.span_id) == 16

    asyncio.run(run())


def test_remote_parent_context_continues_trace() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = _tracer(exporter)
        remote = SpanContext(trace_id="4bf92f3577b34da6a3ce929d0e0e4736", span_id="00f067aa0ba902b7", is_remote=True)

        span = tracer.start_span("handle", kind=SpanKind.SERVER, parent=remote)
        await tracer.end_span(span)

        assert span.trace_id == remote.trace_id
        assert span.parent_span_id == remote.span_id

    asyncio.run(run())


def test_end_span_is_idempotent_and_delivers_once() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = _tracer(exporter)

        span = tracer.start_span("once")
        await tracer.end_span(span)
        first_end = span.end_time_ns
        await tracer.end_span(span)

        assert span.end_time_ns == first_end
        assert len(exporter.get_finished_spans()) == 1

    asyncio.run(run())


def test_finished_span_ignores_mutation() -> None:
    async def run() -> None:
        tracer = _tracer(InMemorySpanExporter())
        span = tracer.start_span("frozen", attributes={"a": 1})
        await tracer.end_span(span)

        span.set_attribute("b", 2)
        span.add_event("late")
        span.set_status(StatusCode.ERROR, "late")

        assert span.attributes == {"a": 1}
        assert span.events == []
        assert span.status.code == StatusCode.UNSET

    asyncio.run(run())


def test_end_time_before_start_is_clamped() -> None:
    tracer = Tracer("unit-test")
    span = tracer.start_span("clock-skew", start_time_ns=2_000)
    span.finish(end_time_ns=1_000)
    assert span.end_time_ns == 2_000
    assert span.duration_ns == 0


def test_invalid_attributes_are_dropped() -> None:
    tracer = Tracer("unit-test")
    span = tracer.start_span(
        "attrs",
        attributes={"ok": "yes", "": "empty-key", "obj": object(), "mixed": [1, "two"], "ints": [1, 2]},
    )
    assert span.attributes == {"ok": "yes", "ints": [1, 2]}


def test_status_ok_is_final() -> None:
    span = Tracer("unit-test").start_span("status")
    span.set_status(StatusCode.ERROR, "boom")
    span.set_status(StatusCode.OK)
    span.set_status(StatusCode.ERROR, "again")
    span.set_status(StatusCode.UNSET)
    assert span.status.code == StatusCode.OK
    assert span.status.description is None


def test_exception_in_span_block_is_recorded_and_reraised() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = _tracer(exporter)

        with pytest.raises(KeyError):
            async with tracer.span("lookup"):
                raise KeyError("missing")

        (span,) = exporter.get_finished_spans()
        assert span.status.code == StatusCode.ERROR
        assert span.events[0].name == "exception"
        assert span.events[0].attributes["exception.type"] == "KeyError"
        assert "Traceback" in span.events[0].attributes["exception.stacktrace"]

    asyncio.run(run())


def test_unsampled_spans_are_recorded_but_not_exported() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = _tracer(exporter, sampler=ALWAYS_OFF)

        async with tracer.span("root") as root:
            async with tracer.span("child") as child:
                pass

        assert child.trace_id == root.trace_id
        assert not root.context.sampled
        assert root.end_time_ns is not None
        assert exporter.get_finished_spans() == []

    asyncio.run(run())


def test_concurrent_tasks_keep_separate_current_spans() -> None:
    async def run() -> None:
        exporter = InMemorySpanExporter()
        tracer = instrument("unit-test", exporter=exporter, batch=False).tracer

        async def worker(name: str) -> str:
            async with tracer.span(name) as span:
                await asyncio.sleep(0)
                current = get_current_span()
                assert current is span
                return span.trace_id

        trace_ids = await asyncio.gather(worker("a"), worker("b"))
        assert trace_ids[0] != trace_ids[1]

    asyncio.run(run())

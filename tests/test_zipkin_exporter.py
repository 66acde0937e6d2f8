import asyncio
import json
from typing import List

import httpx

from span_relay.core.span import SpanKind, StatusCode
from span_relay.core.tracer import Tracer
from span_relay.exporters.base import ExportResult
from span_relay.exporters.zipkin import ZipkinExporter, encode_span


def _finished_span(**kwargs):
    tracer = Tracer("checkout")
    span = tracer.start_span("charge-card", start_time_ns=1_700_000_000_000_000_000, **kwargs)
    span.finish(end_time_ns=1_700_000_000_250_000_000)
    return span


def test_encode_span_zipkin_v2_shape() -> None:
    tracer = Tracer("checkout")
    parent = tracer.start_span("order")
    span = tracer.start_span(
        "charge-card",
        kind=SpanKind.CLIENT,
        parent=parent,
        attributes={"amount": 12.5, "retry": False, "tags": ["a", "b"], "peer.service": "payments"},
        start_time_ns=1_700_000_000_000_000_000,
    )
    span.add_event("sent", timestamp_ns=1_700_000_000_100_000_000)
    span.add_event("ack", {"code": 7}, timestamp_ns=1_700_000_000_200_000_000)
    span.set_status(StatusCode.ERROR, "card declined")
    span.finish(end_time_ns=1_700_000_000_250_000_000)

    payload = encode_span(span)

    assert payload["traceId"] == parent.trace_id
    assert payload["id"] == span.span_id
    assert payload["parentId"] == parent.span_id
    assert payload["kind"] == "CLIENT"
    assert payload["timestamp"] == 1_700_000_000_000_000
    assert payload["duration"] == 250_000
    assert payload["localEndpoint"] == {"serviceName": "checkout"}
    assert payload["remoteEndpoint"] == {"serviceName": "payments"}
    assert payload["tags"] == {
        "amount": "12.5",
        "retry": "false",
        "tags": '["a","b"]',
        "peer.service": "payments",
        "otel.status_code": "ERROR",
        "error": "card declined",
    }
    assert payload["annotations"] == [
        {"timestamp": 1_700_000_000_100_000, "value": "sent"},
        {"timestamp": 1_700_000_000_200_000, "value": 'ack: {"code":7}'},
    ]


def test_encode_internal_root_span_omits_optional_fields() -> None:
    span = Tracer("svc").start_span("tick", start_time_ns=5_000)
    span.finish(end_time_ns=5_000)
    payload = encode_span(span)
    assert "parentId" not in payload
    assert "kind" not in payload
    assert "tags" not in payload
    assert "annotations" not in payload
    assert payload["duration"] == 1


def test_export_posts_json_to_endpoint() -> None:
    async def run() -> None:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        exporter = ZipkinExporter("http://zipkin:9411/api/v2/spans", client=client)

        result = await exporter.export([_finished_span(), _finished_span()])
        await exporter.close()
        assert client.is_closed is False
        await client.aclose()

        assert result == ExportResult.SUCCESS
        assert len(requests) == 1
        assert str(requests[0].url) == "http://zipkin:9411/api/v2/spans"
        assert requests[0].headers["content-type"] == "application/json"
        body = json.loads(requests[0].content)
        assert [item["name"] for item in body] == ["charge-card", "charge-card"]

    asyncio.run(run())


def test_export_retries_transient_failures() -> None:
    async def run() -> None:
        statuses = iter([503, 429, 200])
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(next(statuses))

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        exporter = ZipkinExporter(client=client, max_attempts=3, backoff_s=0)

        assert await exporter.export([_finished_span()]) == ExportResult.SUCCESS
        assert len(calls) == 3

    asyncio.run(run())


def test_export_gives_up_on_client_errors_without_retry() -> None:
    async def run() -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad span")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        exporter = ZipkinExporter(client=client, backoff_s=0)

        assert await exporter.export([_finished_span()]) == ExportResult.FAILURE
        assert len(calls) == 1

    asyncio.run(run())


def test_export_reports_failure_when_collector_unreachable() -> None:
    async def run() -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        exporter = ZipkinExporter(client=client, max_attempts=2, backoff_s=0)

        assert await exporter.export([_finished_span()]) == ExportResult.FAILURE

    asyncio.run(run())


def test_closed_exporter_refuses_export() -> None:
    async def run() -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        exporter = ZipkinExporter(client=client)
        await exporter.close()
        assert await exporter.export([_finished_span()]) == ExportResult.FAILURE

    asyncio.run(run())

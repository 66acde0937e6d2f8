"""Zipkin exporter: JSON v2 spans over HTTP."""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.span import AttributeValue, Span, SpanKind, StatusCode
from ..errors import ConfigError, ExportError
from ..utils.time import ns_to_us
from .base import Exporter, ExportResult

logger = logging.getLogger(__name__)

DEFAULT_ZIPKIN_ENDPOINT = "http://localhost:9411/api/v2/spans"

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def _tag_value(value: AttributeValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), separators=(",", ":"))
    return str(value)


def _remote_endpoint(attributes: Dict[str, AttributeValue]) -> Optional[Dict[str, Any]]:
    endpoint: Dict[str, Any] = {}
    service = attributes.get("peer.service")
    if isinstance(service, str):
        endpoint["serviceName"] = service
    host = attributes.get("net.peer.name")
    if isinstance(host, str):
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            endpoint.setdefault("serviceName", host)
        else:
            endpoint[f"ipv{address.version}"] = host
    port = attributes.get("net.peer.port")
    if isinstance(port, int) and not isinstance(port, bool):
        endpoint["port"] = port
    return endpoint or None


def encode_span(span: Span) -> Dict[str, Any]:
    """Encode one finished span as a Zipkin v2 JSON object."""
    start_us = ns_to_us(span.start_time_ns)
    end_ns = span.end_time_ns if span.end_time_ns is not None else span.start_time_ns
    payload: Dict[str, Any] = {
        "traceId": span.trace_id,
        "id": span.span_id,
        "name": span.name,
        "timestamp": start_us,
        "duration": max(1, ns_to_us(end_ns) - start_us),
        "localEndpoint": {"serviceName": span.service},
    }
    if span.parent_span_id:
        payload["parentId"] = span.parent_span_id
    if span.kind != SpanKind.INTERNAL:
        payload["kind"] = span.kind.value

    tags = {key: _tag_value(value) for key, value in span.attributes.items()}
    if span.status.code != StatusCode.UNSET:
        tags["otel.status_code"] = span.status.code.value
    if span.status.code == StatusCode.ERROR:
        tags["error"] = span.status.description or ""
    if tags:
        payload["tags"] = tags

    remote = _remote_endpoint(span.attributes)
    if remote:
        payload["remoteEndpoint"] = remote

    if span.events:
        annotations: List[Dict[str, Any]] = []
        for event in span.events:
            value = event.name
            if event.attributes:
                value = f"{event.name}: {json.dumps(event.attributes, sort_keys=True, separators=(',', ':'))}"
            annotations.append({"timestamp": ns_to_us(event.timestamp_ns), "value": value})
        payload["annotations"] = annotations
    return payload


def encode_spans(spans: Sequence[Span]) -> List[Dict[str, Any]]:
    return [encode_span(span) for span in spans]


class ZipkinExporter(Exporter):
    """Exporter that POSTs spans to a Zipkin collector using ``httpx``.

    Without a ``client`` a short-lived ``httpx.AsyncClient`` is opened per
    export. A caller-supplied ``client`` is used as-is and never closed here.
    """

    name = "zipkin"

    def __init__(
        self,
        endpoint: str = DEFAULT_ZIPKIN_ENDPOINT,
        *,
        timeout_s: float = 10.0,
        max_attempts: int = 3,
        backoff_s: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if max_attempts < 1:
            raise ConfigError("`max_attempts` must be at least 1.")
        self.endpoint = endpoint
        self._timeout_s = timeout_s
        self._max_attempts = max_attempts
        self._backoff_s = backoff_s
        self._client = client
        self._closed = False

    async def export(self, spans: Sequence[Span]) -> ExportResult:
        """Send ``spans`` to Zipkin; failures are logged and reported as FAILURE."""
        if self._closed:
            logger.warning("ZipkinExporter is closed; dropping %d spans", len(spans))
            return ExportResult.FAILURE
        if not spans:
            return ExportResult.SUCCESS

        body = json.dumps(encode_spans(spans), separators=(",", ":")).encode("utf-8")
        try:
            if self._client is not None:
                await self._post_with_retry(self._client, body)
            else:
                # Built per export so the exporter can outlive the event loop it was first used in.
                async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                    await self._post_with_retry(client, body)
        except ExportError as exc:
            logger.error("Failed to export %d spans to %s: %s", len(spans), self.endpoint, exc)
            return ExportResult.FAILURE
        logger.debug("Exported %d spans to %s", len(spans), self.endpoint)
        return ExportResult.SUCCESS

    async def _post_with_retry(self, client: httpx.AsyncClient, body: bytes) -> None:
        headers = {"Content-Type": "application/json"}
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await client.post(self.endpoint, content=body, headers=headers, timeout=self._timeout_s)
            except httpx.TransportError as exc:
                reason = f"{type(exc).__name__}: {exc}"
                status_code = None
            else:
                if response.status_code < 400:
                    return
                reason = f"HTTP {response.status_code}: {response.text[:200]}"
                status_code = response.status_code
                if status_code not in RETRYABLE_STATUS_CODES:
                    raise ExportError(reason, status_code=status_code)

            if attempt == self._max_attempts:
                raise ExportError(f"giving up after {attempt} attempts ({reason})", status_code=status_code)
            delay = self._backoff_s * (2 ** (attempt - 1))
            logger.warning(
                "Zipkin export attempt %d/%d failed (%s); retrying in %.2fs",
                attempt,
                self._max_attempts,
                reason,
                delay,
            )
            await asyncio.sleep(delay)

    async def close(self) -> None:
        """Stop exporting; later exports fail.

        An injected ``client`` belongs to the caller and is left open.
        """
        self._closed = True
        self._client = None

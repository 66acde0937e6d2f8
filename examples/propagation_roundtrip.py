"""Two in-process services sharing one trace over HTTP headers.

The backend is an async ``httpx.MockTransport`` handler, so no sockets are
opened. Spans from both sides print to stdout as JSON lines.
"""

from __future__ import annotations

import asyncio

import httpx

from span_relay import SpanKind, instrument
from span_relay.core.propagation import extract
from span_relay.exporters import ConsoleExporter
from span_relay.instrumentation import traced_client

frontend = instrument("frontend", exporter=ConsoleExporter(), batch=False).tracer
backend = instrument("inventory", exporter=ConsoleExporter(), batch=False).tracer


async def inventory_handler(request: httpx.Request) -> httpx.Response:
    remote = extract(request.headers)
    async with backend.span("GET /items", kind=SpanKind.SERVER, parent=remote) as span:
        span.set_attribute("http.route", "/items")
        return httpx.Response(200, json={"items": ["A-1", "B-2"]})


async def main() -> None:
    async with traced_client(frontend, transport=httpx.MockTransport(inventory_handler)) as client:
        async with frontend.span("render-catalog"):
            response = await client.get("http://inventory:8080/items")
            print("Inventory:", response.json())


if __name__ == "__main__":
    asyncio.run(main())

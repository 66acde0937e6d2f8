import asyncio
import json
import logging

import httpx
from typer.testing import CliRunner

from span_relay import bootstrap
from span_relay.cli import app
from span_relay.config import PipelineConfig
from span_relay.core.metrics import SpanMetrics, start_metrics_server
from span_relay.processors import BatchSpanProcessor, MultiSpanProcessor, SimpleSpanProcessor

runner = CliRunner()

SCRIPT = """
import asyncio
import sys

from span_relay import get_tracer


async def main():
    async with get_tracer().span("scripted-work") as span:
        span.set_attribute("argv", " ".join(sys.argv[1:]))
    print("script done")


asyncio.run(main())
"""


def _json_lines(output: str):
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


def _drop_cli_log_handler() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == "span_relay":
            root.removeHandler(handler)


def test_initialize_is_idempotent_and_shutdown_resets() -> None:
    config = PipelineConfig(service_name="boot", exporters=("none",), metrics_enabled=False)
    pipeline = bootstrap.initialize(config, serve_metrics=False)
    try:
        again = bootstrap.initialize(PipelineConfig(service_name="other"), serve_metrics=False)
        assert again is pipeline
        assert bootstrap.get_tracer() is pipeline.tracer
        assert bootstrap.get_tracer().service == "boot"
    finally:
        asyncio.run(bootstrap.shutdown())
    assert bootstrap.get_pipeline() is None
    assert bootstrap.get_tracer().service == "unknown-service"


def test_build_instrumentation_matches_config() -> None:
    config = PipelineConfig(service_name="svc", exporters=("zipkin", "console"), processor="simple")
    inst = bootstrap.build_instrumentation(config)
    assert isinstance(inst.processor, MultiSpanProcessor)
    assert all(isinstance(p, SimpleSpanProcessor) for p in inst.processor.processors)

    batch_config = PipelineConfig(service_name="svc", exporters=("console",))
    batch_inst = bootstrap.build_instrumentation(batch_config, SpanMetrics())
    children = batch_inst.processor.processors
    assert isinstance(children[-1], BatchSpanProcessor)
    assert children[-1].schedule_delay_s == 5.0


def test_metrics_server_serves_registry() -> None:
    metrics = SpanMetrics()
    metrics.record_dropped("batch", 4)
    server, _thread = start_metrics_server(metrics, port=0, addr="127.0.0.1")
    try:
        response = httpx.get(f"http://127.0.0.1:{server.server_port}/metrics")
    finally:
        server.shutdown()
        server.server_close()
    assert response.status_code == 200
    assert 'span_relay_spans_dropped_total{processor="batch"} 4.0' in response.text


def test_cli_run_executes_script_and_flushes_spans(tmp_path, monkeypatch) -> None:
    script = tmp_path / "app.py"
    script.write_text(SCRIPT)
    monkeypatch.setenv("SPAN_RELAY_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("SPAN_RELAY_METRICS_ENABLED", "false")

    try:
        result = runner.invoke(
            app,
            ["run", "--service-name", "cli-app", "--exporter", "console", str(script), "alpha", "beta"],
        )
    finally:
        _drop_cli_log_handler()

    assert result.exit_code == 0, result.output
    assert "script done" in result.stdout
    (span,) = _json_lines(result.stdout)
    assert span["name"] == "scripted-work"
    assert span["service"] == "cli-app"
    assert span["attributes"] == {"argv": "alpha beta"}
    assert bootstrap.get_pipeline() is None


def test_cli_run_propagates_script_exit_code(tmp_path, monkeypatch) -> None:
    script = tmp_path / "fail.py"
    script.write_text("raise SystemExit(3)\n")
    monkeypatch.setenv("SPAN_RELAY_EXPORTERS", "none")
    monkeypatch.setenv("SPAN_RELAY_LOG_LEVEL", "WARNING")

    try:
        result = runner.invoke(app, ["run", "--no-serve-metrics", str(script)])
    finally:
        _drop_cli_log_handler()

    assert result.exit_code == 3
    assert bootstrap.get_pipeline() is None


def test_cli_config_prints_resolved_settings(monkeypatch) -> None:
    monkeypatch.setenv("SPAN_RELAY_SERVICE_NAME", "from-env")
    result = runner.invoke(app, ["config", "--exporter", "console"])
    assert result.exit_code == 0, result.output
    printed = json.loads(result.stdout)
    assert printed["service_name"] == "from-env"
    assert printed["exporters"] == ["console"]
    assert printed["zipkin_endpoint"] == "http://localhost:9411/api/v2/spans"


def test_cli_reports_configuration_errors(monkeypatch) -> None:
    monkeypatch.setenv("SPAN_RELAY_SAMPLE_RATE", "lots")
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 2

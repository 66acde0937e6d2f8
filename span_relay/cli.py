"""CLI for span-relay.

Runs a Python script with the telemetry pipeline initialized first, and
shows the configuration resolved from the environment.
"""

from __future__ import annotations

import asyncio
import json
import runpy
import sys
from pathlib import Path
from typing import List, Optional

import typer

from .bootstrap import initialize, shutdown
from .config import PipelineConfig
from .errors import ConfigError
from .logs import configure_logging

app = typer.Typer(
    name="span-relay",
    help="span-relay - trace and metrics pipeline for Python services",
    add_completion=False,
)


def _load_config(service_name: Optional[str], exporters: Optional[List[str]]) -> PipelineConfig:
    overrides = {}
    if service_name:
        overrides["service_name"] = service_name
    if exporters:
        overrides["exporters"] = tuple(name.strip().lower() for name in exporters)
    try:
        return PipelineConfig.from_env(**overrides)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(2)


def _exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    typer.echo(str(code), err=True)
    return 1


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
    script: Path = typer.Argument(..., exists=True, dir_okay=False, help="Python script to run as __main__"),
    service_name: Optional[str] = typer.Option(
        None,
        "--service-name",
        "-s",
        help="Service name reported on every span (overrides SPAN_RELAY_SERVICE_NAME)",
    ),
    exporter: Optional[List[str]] = typer.Option(
        None,
        "--exporter",
        "-e",
        help="Exporter to enable; repeatable (overrides SPAN_RELAY_EXPORTERS)",
    ),
    serve_metrics: bool = typer.Option(
        True,
        "--serve-metrics/--no-serve-metrics",
        help="Expose the Prometheus scrape endpoint while the script runs",
    ),
) -> None:
    """Initialize tracing, then run SCRIPT with any remaining arguments."""
    config = _load_config(service_name, exporter)
    configure_logging(config.log_level, config.log_format)
    initialize(config, serve_metrics=serve_metrics)

    saved_argv = sys.argv
    sys.argv = [str(script), *ctx.args]
    script_dir = str(script.resolve().parent)
    sys.path.insert(0, script_dir)
    exit_code = 0
    try:
        runpy.run_path(str(script), run_name="__main__")
    except SystemExit as exc:
        exit_code = _exit_code(exc.code)
    finally:
        sys.argv = saved_argv
        if script_dir in sys.path:
            sys.path.remove(script_dir)
        asyncio.run(shutdown())

    if exit_code:
        raise typer.Exit(exit_code)


@app.command("config")
def show_config(
    service_name: Optional[str] = typer.Option(None, "--service-name", "-s", help="Override the service name"),
    exporter: Optional[List[str]] = typer.Option(None, "--exporter", "-e", help="Override the exporters"),
) -> None:
    """Print the configuration resolved from SPAN_RELAY_* variables as JSON."""
    config = _load_config(service_name, exporter)
    typer.echo(json.dumps(config.to_dict(), indent=2, sort_keys=True))


if __name__ == "__main__":
    app()

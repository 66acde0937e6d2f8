"""Environment-driven configuration for the telemetry pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple, TypeVar

from .core.metrics import DEFAULT_METRICS_PORT
from .errors import ConfigError
from .exporters.zipkin import DEFAULT_ZIPKIN_ENDPOINT

ENV_PREFIX = "SPAN_RELAY_"

EXPORTER_NAMES = ("zipkin", "console", "postgres", "none")
PROCESSOR_NAMES = ("batch", "simple")
PROPAGATOR_NAMES = ("tracecontext", "b3", "b3multi")
LOG_FORMATS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

T = TypeVar("T")


def _split_names(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"expected one of {sorted(_TRUE | _FALSE)}")


@dataclass(frozen=True)
class BatchConfig:
    """Queue and timing limits for :class:`~span_relay.processors.BatchSpanProcessor`."""

    max_queue_size: int = 2048
    max_export_batch_size: int = 512
    schedule_delay_ms: int = 5000
    export_timeout_ms: int = 30000


@dataclass(frozen=True)
class PipelineConfig:
    """Resolved settings for tracer, processors, exporters and metrics."""

    service_name: str = "unknown-service"
    exporters: Tuple[str, ...] = ("zipkin",)
    zipkin_endpoint: str = DEFAULT_ZIPKIN_ENDPOINT
    database_url: Optional[str] = None
    processor: str = "batch"
    batch: BatchConfig = field(default_factory=BatchConfig)
    sample_rate: float = 1.0
    propagators: Tuple[str, ...] = ("tracecontext", "b3multi")
    metrics_enabled: bool = True
    metrics_host: str = "0.0.0.0"
    metrics_port: int = DEFAULT_METRICS_PORT
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self) -> None:
        if not self.service_name:
            raise ConfigError(f"{ENV_PREFIX}SERVICE_NAME must not be empty.")
        for name in self.exporters:
            if name not in EXPORTER_NAMES:
                raise ConfigError(
                    f"{ENV_PREFIX}EXPORTERS: unknown exporter '{name}'. Expected one of: {', '.join(EXPORTER_NAMES)}."
                )
        if "postgres" in self.exporters and not self.database_url:
            raise ConfigError(f"{ENV_PREFIX}DATABASE_URL is required when the postgres exporter is enabled.")
        if self.processor not in PROCESSOR_NAMES:
            raise ConfigError(
                f"{ENV_PREFIX}PROCESSOR: unknown processor '{self.processor}'. Expected one of: {', '.join(PROCESSOR_NAMES)}."
            )
        for name in self.propagators:
            if name not in PROPAGATOR_NAMES:
                raise ConfigError(
                    f"{ENV_PREFIX}PROPAGATORS: unknown propagator '{name}'. Expected one of: {', '.join(PROPAGATOR_NAMES)}."
                )
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ConfigError(f"{ENV_PREFIX}SAMPLE_RATE must be within [0.0, 1.0], got {self.sample_rate!r}.")
        if not 0 < self.metrics_port < 65536:
            raise ConfigError(f"{ENV_PREFIX}METRICS_PORT must be a TCP port, got {self.metrics_port!r}.")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"{ENV_PREFIX}LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}.")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"{ENV_PREFIX}LOG_FORMAT must be one of: {', '.join(LOG_FORMATS)}.")
        batch = self.batch
        if min(batch.max_queue_size, batch.max_export_batch_size, batch.schedule_delay_ms, batch.export_timeout_ms) <= 0:
            raise ConfigError(f"{ENV_PREFIX}BSP_* settings must be positive.")
        if batch.max_export_batch_size > batch.max_queue_size:
            raise ConfigError(
                f"{ENV_PREFIX}BSP_MAX_EXPORT_BATCH_SIZE must not exceed {ENV_PREFIX}BSP_MAX_QUEUE_SIZE."
            )

    @property
    def active_exporters(self) -> List[str]:
        return [name for name in self.exporters if name != "none"]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: object) -> "PipelineConfig":
        """Build a config from ``SPAN_RELAY_*`` variables; keyword overrides win."""
        env = os.environ if environ is None else environ

        def read(name: str, parse: Callable[[str], T], default: T) -> T:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return parse(raw.strip())
            except ValueError as exc:
                raise ConfigError(f"{ENV_PREFIX}{name}: invalid value {raw!r} ({exc}).") from exc

        defaults = cls()
        batch_defaults = BatchConfig()
        values = {
            "service_name": read("SERVICE_NAME", str, defaults.service_name),
            "exporters": read("EXPORTERS", _split_names, defaults.exporters),
            "zipkin_endpoint": read("ZIPKIN_ENDPOINT", str, defaults.zipkin_endpoint),
            "database_url": read("DATABASE_URL", str, defaults.database_url),
            "processor": read("PROCESSOR", str.lower, defaults.processor),
            "batch": BatchConfig(
                max_queue_size=read("BSP_MAX_QUEUE_SIZE", int, batch_defaults.max_queue_size),
                max_export_batch_size=read("BSP_MAX_EXPORT_BATCH_SIZE", int, batch_defaults.max_export_batch_size),
                schedule_delay_ms=read("BSP_SCHEDULE_DELAY_MS", int, batch_defaults.schedule_delay_ms),
                export_timeout_ms=read("BSP_EXPORT_TIMEOUT_MS", int, batch_defaults.export_timeout_ms),
            ),
            "sample_rate": read("SAMPLE_RATE", float, defaults.sample_rate),
            "propagators": read("PROPAGATORS", _split_names, defaults.propagators),
            "metrics_enabled": read("METRICS_ENABLED", _parse_bool, defaults.metrics_enabled),
            "metrics_host": read("METRICS_HOST", str, defaults.metrics_host),
            "metrics_port": read("METRICS_PORT", int, defaults.metrics_port),
            "log_level": read("LOG_LEVEL", str.upper, defaults.log_level),
            "log_format": read("LOG_FORMAT", str.lower, defaults.log_format),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]

    def to_dict(self) -> dict:
        return {
            "service_name": self.service_name,
            "exporters": list(self.exporters),
            "zipkin_endpoint": self.zipkin_endpoint,
            "database_url": "<set>" if self.database_url else None,
            "processor": self.processor,
            "batch": {
                "max_queue_size": self.batch.max_queue_size,
                "max_export_batch_size": self.batch.max_export_batch_size,
                "schedule_delay_ms": self.batch.schedule_delay_ms,
                "export_timeout_ms": self.batch.export_timeout_ms,
            },
            "sample_rate": self.sample_rate,
            "propagators": list(self.propagators),
            "metrics_enabled": self.metrics_enabled,
            "metrics_host": self.metrics_host,
            "metrics_port": self.metrics_port,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }

"""Import first to initialize tracing from ``SPAN_RELAY_*`` environment variables.

    import span_relay.auto  # noqa: F401  (before application imports)

Pending spans are flushed when the interpreter exits.
"""

from __future__ import annotations

from .bootstrap import initialize
from .config import PipelineConfig
from .logs import configure_logging

_config = PipelineConfig.from_env()
configure_logging(_config.log_level, _config.log_format)
pipeline = initialize(_config, register_atexit=True)

"""Optional tracing and metrics for language server requests.

Off by default (``OTEL_ENABLED=false``); the SDK is only imported by
``init_telemetry`` once enabled, otherwise ``trace_lsp_request`` records
into no-op spans and instruments.

Usage:
    from lspmux_core.telemetry import init_telemetry, shutdown_telemetry

    init_telemetry()
    ...
    await shutdown_telemetry()
"""

from lspmux_core.telemetry.setup import (
    get_meter,
    get_tracer,
    init_telemetry,
    shutdown_telemetry,
)
from lspmux_core.telemetry.spans import trace_lsp_request

__all__ = [
    "init_telemetry",
    "shutdown_telemetry",
    "get_tracer",
    "get_meter",
    "trace_lsp_request",
]

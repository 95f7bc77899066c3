"""Span helpers for language server requests."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from lspmux_core.telemetry.setup import get_meter, get_tracer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from opentelemetry.metrics import Histogram

_request_duration: Histogram | None = None


def _duration_histogram() -> Histogram:
    global _request_duration
    if _request_duration is None:
        _request_duration = get_meter(__name__).create_histogram(
            "lsp.request.duration",
            unit="s",
            description="Latency of language server requests",
        )
    return _request_duration


@asynccontextmanager
async def trace_lsp_request(
    method: str,
    workspace: str,
) -> AsyncIterator[trace.Span]:
    """Context manager for tracing one language server request.

    Usage:
        async with trace_lsp_request("textDocument/hover", str(root)) as span:
            result = await future

    Args:
        method: LSP method name
        workspace: Workspace root the session serves

    Yields:
        The active span for adding additional attributes
    """
    tracer = get_tracer(__name__)
    started = time.perf_counter()
    outcome = "ok"
    with tracer.start_as_current_span(
        "lsp.request",
        attributes={"lsp.method": method, "lsp.workspace": workspace},
    ) as span:
        try:
            yield span
        except Exception as e:
            outcome = type(e).__name__
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
        finally:
            _duration_histogram().record(
                time.perf_counter() - started,
                attributes={"lsp.method": method, "lsp.outcome": outcome},
            )

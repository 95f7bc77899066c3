"""Conditional OpenTelemetry setup.

Nothing from the OTEL SDK is imported unless ``otel_enabled`` is set, so the
default install only needs ``opentelemetry-api`` and every span is a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from opentelemetry.trace import Tracer

    from lspmux_core.settings import Settings

logger = logging.getLogger(__name__)

# Providers installed by init_telemetry; None while disabled
_tracer_provider: Any = None
_meter_provider: Any = None


def _build_sampler(settings: Settings) -> Any:
    from opentelemetry.sdk.trace.sampling import (
        ALWAYS_OFF,
        ALWAYS_ON,
        ParentBasedTraceIdRatio,
        TraceIdRatioBased,
    )

    ratio = settings.otel_traces_sampler_arg
    samplers = {
        "always_on": lambda: ALWAYS_ON,
        "always_off": lambda: ALWAYS_OFF,
        "traceidratio": lambda: TraceIdRatioBased(ratio),
        "parentbased_traceidratio": lambda: ParentBasedTraceIdRatio(ratio),
    }
    factory = samplers.get(settings.otel_traces_sampler)
    if factory is None:
        logger.warning("Unknown sampler %r, sampling everything", settings.otel_traces_sampler)
        return ALWAYS_ON
    return factory()


def _build_resource(settings: Settings, extra: dict[str, str] | None) -> Any:
    from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

    attributes: dict[str, str] = {
        SERVICE_NAME: settings.otel_service_name,
        SERVICE_VERSION: settings.lsp_client_version,
        "deployment.environment": "development" if settings.debug else "production",
        "lsp.server.command": settings.lsp_server_command,
    }
    attributes.update(extra or {})
    return Resource.create(attributes)


def init_telemetry(
    settings: Settings | None = None,
    extra_resource_attributes: dict[str, str] | None = None,
) -> bool:
    """Install OTLP trace and metric providers when telemetry is enabled.

    Calling it again after a successful setup does nothing.

    Args:
        settings: Settings to read; defaults to ``get_settings()``
        extra_resource_attributes: Added to the resource of every span and metric

    Returns:
        Whether telemetry is active
    """
    global _tracer_provider, _meter_provider

    if _tracer_provider is not None:
        return True

    if settings is None:
        from lspmux_core.settings import get_settings

        settings = get_settings()

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled (OTEL_ENABLED=false)")
        return False

    from opentelemetry import metrics, trace
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    endpoint = settings.otel_exporter_otlp_endpoint
    resource = _build_resource(settings, extra_resource_attributes)

    tracer_provider = TracerProvider(resource=resource, sampler=_build_sampler(settings))
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint), export_interval_millis=60000
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)

    _tracer_provider = tracer_provider
    _meter_provider = meter_provider
    logger.info(
        "OpenTelemetry initialized: service=%s, endpoint=%s",
        settings.otel_service_name,
        endpoint,
    )
    return True


async def shutdown_telemetry() -> None:
    """Flush pending spans and metrics, then drop the providers.

    A no-op when telemetry was never initialized.
    """
    global _tracer_provider, _meter_provider

    if _tracer_provider is None:
        return

    _tracer_provider.shutdown()
    if _meter_provider is not None:
        _meter_provider.shutdown()

    _tracer_provider = None
    _meter_provider = None
    logger.info("OpenTelemetry shutdown complete")


def get_tracer(name: str = __name__) -> Tracer:
    """Tracer for ``name``; the API's no-op tracer while telemetry is off."""
    from opentelemetry import trace

    if _tracer_provider is not None:
        return _tracer_provider.get_tracer(name)
    return trace.get_tracer(name)


def get_meter(name: str = __name__) -> Meter:
    """Meter for ``name``; the API's no-op meter while telemetry is off."""
    from opentelemetry import metrics

    if _meter_provider is not None:
        return _meter_provider.get_meter(name)
    return metrics.get_meter(name)

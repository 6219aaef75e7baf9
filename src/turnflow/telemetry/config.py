"""OpenTelemetry configuration and initialization."""

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GRPCTraceExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HTTPTraceExporter,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from turnflow.config import get_settings

logger = logging.getLogger(__name__)

# Provider owned by turnflow (cached after initialization)
_TRACER_PROVIDER: TracerProvider | None = None


def _reset_providers() -> None:
    """Reset the cached provider (for testing)."""
    global _TRACER_PROVIDER
    if _TRACER_PROVIDER is not None:
        _TRACER_PROVIDER.shutdown()
    _TRACER_PROVIDER = None


def _create_resource(settings: dict[str, Any]) -> Resource:
    """Create OpenTelemetry Resource with service attributes."""
    attributes = {
        "service.name": settings.get("service_name", "turnflow"),
        "deployment.environment": settings.get("environment", "development"),
        "service.namespace": "turnflow",
    }
    try:
        attributes["service.version"] = version("turnflow")
    except PackageNotFoundError:
        attributes["service.version"] = "0.1.0"
    return Resource.create(attributes)


def _create_trace_exporter(settings: dict[str, Any]) -> SpanExporter:
    """Create the trace exporter for the configured endpoint."""
    endpoint = settings.get("otel_exporter_otlp_endpoint")
    if not endpoint:
        logger.info("No OTLP endpoint configured, using console exporter")
        return ConsoleSpanExporter()

    if endpoint.startswith("http://") or endpoint.startswith("https://"):
        if not endpoint.endswith("/v1/traces"):
            endpoint = f"{endpoint.rstrip('/')}/v1/traces"
        return HTTPTraceExporter(endpoint=endpoint)
    return GRPCTraceExporter(endpoint=endpoint, insecure=True)


def configure_tracer_provider(
    settings_override: dict[str, Any] | None = None,
    force_reset: bool = False,
    span_exporter: SpanExporter | None = None,
) -> TracerProvider | None:
    """Configure and return the turnflow tracer provider.

    Args:
        settings_override: Optional settings dict for testing
        force_reset: Force reconfiguration even if already configured
        span_exporter: Explicit exporter; enables telemetry regardless of settings

    Returns:
        TracerProvider if telemetry is enabled, None otherwise
    """
    global _TRACER_PROVIDER

    settings = settings_override or get_settings().model_dump()
    if span_exporter is None and not settings.get("enable_telemetry", False):
        return None

    if _TRACER_PROVIDER is not None and not force_reset:
        return _TRACER_PROVIDER

    exporter = span_exporter or _create_trace_exporter(settings)
    provider = TracerProvider(
        resource=_create_resource(settings),
        sampler=TraceIdRatioBased(settings.get("otel_traces_sampler_arg", 1.0)),
    )
    if isinstance(exporter, HTTPTraceExporter | GRPCTraceExporter):
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    _TRACER_PROVIDER = provider
    logger.info(
        f"Tracer provider configured: service={settings.get('service_name', 'turnflow')}, "
        f"environment={settings.get('environment', 'development')}"
    )
    return provider


def get_tracer(instrumentation_name: str = "turnflow") -> trace.Tracer:
    """Get a tracer, falling back to the global (possibly no-op) provider."""
    provider = _TRACER_PROVIDER or configure_tracer_provider()
    if provider is None:
        return trace.get_tracer(instrumentation_name)
    return provider.get_tracer(instrumentation_name)


__all__ = ["configure_tracer_provider", "get_tracer"]

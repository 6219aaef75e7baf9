"""OpenTelemetry integration for turnflow."""

from turnflow.telemetry.config import configure_tracer_provider, get_tracer
from turnflow.telemetry.tracing import set_span_error, traced_stream

__all__ = [
    "configure_tracer_provider",
    "get_tracer",
    "set_span_error",
    "traced_stream",
]

"""Tracing helpers for lazily consumed event streams.

Invocation pipelines are async generators built before anyone iterates
them, so spans cannot be bound to a ``with`` block around the call site.
``traced_stream`` opens its span on first iteration and ends it when the
stream terminates: normal completion, error, or the consumer calling
``aclose()``. The span is made current only while the wrapped stream is
being advanced, never across a ``yield``.
"""

from collections.abc import AsyncGenerator, Mapping
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

from turnflow.telemetry.config import get_tracer

T = TypeVar("T")


def set_span_error(span: Span, exception: BaseException, description: str | None = None) -> None:
    """Record an exception and set the span status to error."""
    if not span.is_recording():
        return
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, description or str(exception)))


async def traced_stream(
    name: str,
    stream: AsyncGenerator[T, None],
    attributes: Mapping[str, Any] | None = None,
) -> AsyncGenerator[T, None]:
    """Wrap ``stream`` in a span that lives exactly as long as the stream."""
    span = get_tracer(__name__).start_span(name, attributes=dict(attributes or {}))
    try:
        while True:
            with trace.use_span(
                span,
                end_on_exit=False,
                record_exception=False,
                set_status_on_exception=False,
            ):
                try:
                    item = await stream.__anext__()
                except StopAsyncIteration:
                    break
            yield item
    except Exception as e:
        set_span_error(span, e)
        raise
    finally:
        await stream.aclose()
        span.end()


__all__ = ["set_span_error", "traced_stream"]

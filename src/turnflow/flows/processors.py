"""Request/response processor contracts and chain runners.

A request processor transforms the outgoing LlmRequest; a response
processor transforms each LlmResponse. Both may emit side-channel events,
and a response processor may ask for an agent transfer. Processors run
strictly in order, each consuming the previous one's output; an exception
aborts the chain.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from turnflow.events import Event
from turnflow.models.llm_request import LlmRequest
from turnflow.models.llm_response import LlmResponse

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext


@dataclass(frozen=True, kw_only=True)
class RequestProcessingResult:
    """Outcome of request processing."""

    updated_request: LlmRequest
    events: tuple[Event, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ResponseProcessingResult:
    """Outcome of response processing.

    Attributes:
        updated_response: Response passed on to the next processor
        events: Side-channel events, emitted before the response's own event
        transfer_to_agent: Agent to hand the turn to after this response
    """

    updated_response: LlmResponse
    events: tuple[Event, ...] = ()
    transfer_to_agent: str | None = None


@runtime_checkable
class RequestProcessor(Protocol):
    """Protocol for outgoing request transformations.

    Example:
        class LabelProcessor:
            async def run_async(self, ctx, llm_request):
                llm_request.config.labels["agent"] = ctx.agent.name
                return RequestProcessingResult(updated_request=llm_request)
    """

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult: ...


@runtime_checkable
class ResponseProcessor(Protocol):
    """Protocol for model response transformations."""

    async def run_async(
        self, ctx: InvocationContext, llm_response: LlmResponse
    ) -> ResponseProcessingResult: ...


async def run_request_processors(
    processors: Sequence[RequestProcessor],
    ctx: InvocationContext,
    llm_request: LlmRequest,
) -> RequestProcessingResult:
    """Apply request processors in order, collecting their events."""
    events: list[Event] = []
    for processor in processors:
        result = await processor.run_async(ctx, llm_request)
        llm_request = result.updated_request
        events.extend(result.events)
    return RequestProcessingResult(updated_request=llm_request, events=tuple(events))


async def run_response_processors(
    processors: Sequence[ResponseProcessor],
    ctx: InvocationContext,
    llm_response: LlmResponse,
) -> ResponseProcessingResult:
    """Apply response processors in order.

    Every processor runs; the first transfer request wins.
    """
    events: list[Event] = []
    transfer_to_agent: str | None = None
    for processor in processors:
        result = await processor.run_async(ctx, llm_response)
        llm_response = result.updated_response
        events.extend(result.events)
        if transfer_to_agent is None and result.transfer_to_agent:
            transfer_to_agent = result.transfer_to_agent
    return ResponseProcessingResult(
        updated_response=llm_response,
        events=tuple(events),
        transfer_to_agent=transfer_to_agent,
    )


__all__ = [
    "RequestProcessingResult",
    "RequestProcessor",
    "ResponseProcessingResult",
    "ResponseProcessor",
    "run_request_processors",
    "run_response_processors",
]

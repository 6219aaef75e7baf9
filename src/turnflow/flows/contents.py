"""Conversation history for the outgoing request."""

from __future__ import annotations

from typing import TYPE_CHECKING

from turnflow.events import USER_AUTHOR, Event
from turnflow.flows.processors import RequestProcessingResult
from turnflow.models.llm_request import LlmRequest
from turnflow.types import Content, Part

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext


def _is_event_belongs_to_branch(invocation_branch: str | None, event: Event) -> bool:
    """An event is visible on its own branch and on every branch below it."""
    if not invocation_branch or not event.branch:
        return True
    return invocation_branch == event.branch or invocation_branch.startswith(f"{event.branch}.")


def _is_other_agent_reply(current_agent_name: str, event: Event) -> bool:
    return bool(
        current_agent_name
        and event.author != current_agent_name
        and event.author != USER_AUTHOR
    )


def _has_payload(event: Event) -> bool:
    if not event.content or not event.content.role or not event.content.parts:
        return False
    return any(
        (part.text and not part.thought)
        or part.inline_data
        or part.function_call
        or part.function_response
        for part in event.content.parts
    )


def _present_other_agent_message(event: Event) -> Event:
    """Reframe another agent's turn as user-side context."""
    parts = [Part(text="For context:")]
    for part in event.content.parts if event.content else ():
        if part.thought:
            continue
        if part.text:
            parts.append(Part(text=f"[{event.author}] said: {part.text}"))
        elif part.function_call:
            parts.append(
                Part(
                    text=f"[{event.author}] called tool `{part.function_call.name}` with "
                    f"parameters: {part.function_call.args}"
                )
            )
        elif part.function_response:
            parts.append(
                Part(
                    text=f"[{event.author}] `{part.function_response.name}` tool returned "
                    f"result: {part.function_response.response}"
                )
            )
        else:
            parts.append(part)

    return Event(
        timestamp=event.timestamp,
        author=USER_AUTHOR,
        content=Content(role="user", parts=tuple(parts)),
        branch=event.branch,
        invocation_id=event.invocation_id,
    )


def _get_contents(
    current_branch: str | None, events: list[Event], agent_name: str
) -> list[Content]:
    contents = []
    for event in events:
        if not _has_payload(event):
            continue
        if not _is_event_belongs_to_branch(current_branch, event):
            continue
        if _is_other_agent_reply(agent_name, event):
            event = _present_other_agent_message(event)
        contents.append(event.content)
    return contents


def _get_current_turn_contents(
    current_branch: str | None, events: list[Event], agent_name: str
) -> list[Content]:
    """Contents from the latest user or other-agent event onwards."""
    for i in range(len(events) - 1, -1, -1):
        event = events[i]
        if not _has_payload(event) or not _is_event_belongs_to_branch(current_branch, event):
            continue
        if event.author == USER_AUTHOR or _is_other_agent_reply(agent_name, event):
            return _get_contents(current_branch, events[i:], agent_name)
    return []


class ContentsRequestProcessor:
    """Builds ``llm_request.contents`` from the session's events."""

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult:
        from turnflow.agents.llm_agent import LlmAgent

        agent = ctx.agent
        if not isinstance(agent, LlmAgent):
            return RequestProcessingResult(updated_request=llm_request)

        if agent.include_contents == "default":
            llm_request.contents = _get_contents(ctx.branch, ctx.session.events, agent.name)
        else:
            llm_request.contents = _get_current_turn_contents(
                ctx.branch, ctx.session.events, agent.name
            )
        return RequestProcessingResult(updated_request=llm_request)


__all__ = ["ContentsRequestProcessor"]

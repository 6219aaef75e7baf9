"""Event definitions for turnflow.

An Event is one step of a conversation: a user turn, an agent reply, a tool
call or a tool response. Events are immutable (frozen dataclass); a revision
is a new Event built with ``dataclasses.replace``. The ``actions`` record is
filled in while an event is being assembled and is treated as read-only once
the event has been appended to a session.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from turnflow.types import Content, FunctionCall, FunctionResponse

# Author marker for events carrying user input
USER_AUTHOR = "user"
# Author marker for synthetic responses produced outside any agent
MODEL_AUTHOR = "model"


@dataclass(kw_only=True)
class EventActions:
    """Side effects carried by an event, applied when it is appended."""

    state_delta: dict[str, Any] = field(default_factory=dict)
    artifact_delta: dict[str, int] = field(default_factory=dict)
    transfer_to_agent: str | None = None
    escalate: bool | None = None
    skip_summarization: bool | None = None
    requested_tool_confirmations: dict[str, Any] = field(default_factory=dict)
    requested_auth_configs: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.state_delta
            or self.artifact_delta
            or self.transfer_to_agent
            or self.escalate
            or self.skip_summarization
            or self.requested_tool_confirmations
            or self.requested_auth_configs
        )

    def copy(self) -> "EventActions":
        """Return a copy whose delta mappings can be changed independently."""
        return replace(
            self,
            state_delta=dict(self.state_delta),
            artifact_delta=dict(self.artifact_delta),
            requested_tool_confirmations=dict(self.requested_tool_confirmations),
            requested_auth_configs=dict(self.requested_auth_configs),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "state_delta": dict(self.state_delta),
            "artifact_delta": dict(self.artifact_delta),
            "transfer_to_agent": self.transfer_to_agent,
            "escalate": self.escalate,
            "skip_summarization": self.skip_summarization,
            "requested_tool_confirmations": dict(self.requested_tool_confirmations),
            "requested_auth_configs": dict(self.requested_auth_configs),
        }


@dataclass(frozen=True, kw_only=True)
class Event:
    """Immutable record of one conversation step.

    Attributes:
        id: Unique event id, assigned by ``Event.new_id``
        invocation_id: Groups all events produced by one runner call
        author: ``USER_AUTHOR``, ``MODEL_AUTHOR`` or an agent name
        content: Optional payload, opaque to the orchestration core
        actions: State/artifact deltas and control-flow requests
        branch: Dotted path of agent names for isolated sub-agent histories
        long_running_tool_ids: Ids of calls whose result arrives later
    """

    author: str
    invocation_id: str = ""
    id: str = field(default_factory=lambda: Event.new_id())
    content: Content | None = None
    actions: EventActions = field(default_factory=EventActions)
    timestamp: float = field(default_factory=time.time)
    partial: bool | None = None
    turn_complete: bool | None = None
    interrupted: bool | None = None
    error_code: str | None = None
    error_message: str | None = None
    branch: str | None = None
    long_running_tool_ids: frozenset[str] | None = None

    @staticmethod
    def new_id() -> str:
        """Generate a fresh event id."""
        return uuid.uuid4().hex[:8] + uuid.uuid4().hex[:8]

    @property
    def text(self) -> str:
        return self.content.text if self.content else ""

    def get_function_calls(self) -> list[FunctionCall]:
        if not self.content:
            return []
        return [p.function_call for p in self.content.parts if p.function_call]

    def get_function_responses(self) -> list[FunctionResponse]:
        if not self.content:
            return []
        return [p.function_response for p in self.content.parts if p.function_response]

    def is_final_response(self) -> bool:
        """Whether this event ends the agent's turn from the caller's view."""
        if self.actions.skip_summarization or self.long_running_tool_ids:
            return True
        return (
            not self.get_function_calls()
            and not self.get_function_responses()
            and not self.partial
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "invocation_id": self.invocation_id,
            "author": self.author,
            "content": self.content.to_dict() if self.content else None,
            "actions": self.actions.to_dict(),
            "timestamp": self.timestamp,
            "partial": self.partial,
            "turn_complete": self.turn_complete,
            "interrupted": self.interrupted,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "branch": self.branch,
            "long_running_tool_ids": sorted(self.long_running_tool_ids or ()),
        }


__all__ = ["Event", "EventActions", "MODEL_AUTHOR", "USER_AUTHOR"]

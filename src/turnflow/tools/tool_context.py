"""Context handed to tools and tool hooks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from turnflow.agents.callback_context import CallbackContext
from turnflow.events import EventActions

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext


class ToolContext(CallbackContext):
    """Context of one tool call.

    Attributes:
        function_call_id: Id of the model's function call being served
    """

    def __init__(
        self,
        invocation_context: InvocationContext,
        *,
        function_call_id: str | None = None,
        event_actions: EventActions | None = None,
    ) -> None:
        super().__init__(invocation_context, event_actions=event_actions)
        self.function_call_id = function_call_id

    def request_confirmation(self, *, hint: str = "", payload: Any = None) -> None:
        """Ask the user to confirm this call before its result is trusted."""
        if not self.function_call_id:
            raise ValueError("function_call_id is not set.")
        self._event_actions.requested_tool_confirmations[self.function_call_id] = {
            "hint": hint,
            "payload": payload,
        }


__all__ = ["ToolContext"]

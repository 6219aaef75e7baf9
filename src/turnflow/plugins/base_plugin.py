"""Base class for plugins: named, globally registered interceptors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from turnflow.agents.base_agent import BaseAgent
    from turnflow.agents.callback_context import CallbackContext
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.events import Event
    from turnflow.models.llm_request import LlmRequest
    from turnflow.models.llm_response import LlmResponse
    from turnflow.tools.base_tool import BaseTool
    from turnflow.tools.tool_context import ToolContext
    from turnflow.types import Content


class BasePlugin:
    """Base class for plugins.

    Every hook is optional and returns ``None`` ("no opinion") by default.
    A non-``None`` value from a ``before_*`` hook bypasses the default step;
    from an ``after_*``, ``on_*_error`` or ``on_event`` hook it replaces the
    default result. ``after_run_callback`` is side-effect only.

    Plugins run before agent-level callbacks, in registration order, and the
    first plugin returning a value wins.

    Example:
        class CountingPlugin(BasePlugin):
            def __init__(self):
                super().__init__(name="counter")
                self.model_calls = 0

            async def before_model_callback(self, *, callback_context, llm_request):
                self.model_calls += 1
                return None
    """

    def __init__(self, name: str) -> None:
        self.name = name

    async def on_user_message_callback(
        self, *, invocation_context: InvocationContext, user_message: Content
    ) -> Content | None:
        """Inspect or replace the user message before it is appended."""
        return None

    async def before_run_callback(
        self, *, invocation_context: InvocationContext
    ) -> Content | None:
        """Return content to answer the turn without running any agent."""
        return None

    async def on_event_callback(
        self, *, invocation_context: InvocationContext, event: Event
    ) -> Event | None:
        """Return an event to forward to the caller instead of ``event``."""
        return None

    async def after_run_callback(self, *, invocation_context: InvocationContext) -> None:
        """Called once when the invocation's event stream terminates."""
        return None

    async def before_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> Content | None:
        return None

    async def after_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> Content | None:
        return None

    async def before_model_callback(
        self, *, callback_context: CallbackContext, llm_request: LlmRequest
    ) -> LlmResponse | None:
        return None

    async def after_model_callback(
        self, *, callback_context: CallbackContext, llm_response: LlmResponse
    ) -> LlmResponse | None:
        return None

    async def on_model_error_callback(
        self,
        *,
        callback_context: CallbackContext,
        llm_request: LlmRequest,
        error: Exception,
    ) -> LlmResponse | None:
        return None

    async def before_tool_callback(
        self, *, tool: BaseTool, tool_args: dict[str, Any], tool_context: ToolContext
    ) -> dict[str, Any] | None:
        return None

    async def after_tool_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        result: dict[str, Any],
    ) -> dict[str, Any] | None:
        return None

    async def on_tool_error_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        error: Exception,
    ) -> dict[str, Any] | None:
        return None

    async def close(self) -> None:
        """Release plugin resources."""
        return None


__all__ = ["BasePlugin"]

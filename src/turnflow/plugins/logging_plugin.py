"""Plugin logging every hook of an invocation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from turnflow.plugins.base_plugin import BasePlugin

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

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 200
MAX_ARGS_LENGTH = 300


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def format_content(content: Content | None) -> str:
    """Joined text of ``content``, truncated for logging."""
    if content is None or not content.parts:
        return "None"
    parts = []
    for part in content.parts:
        if part.text:
            parts.append(part.text)
        elif part.function_call:
            parts.append(f"function_call: {part.function_call.name}")
        elif part.function_response:
            parts.append(f"function_response: {part.function_response.name}")
        elif part.inline_data:
            parts.append(f"inline_data: {part.inline_data.mime_type}")
    return _truncate("\n".join(parts).strip(), MAX_CONTENT_LENGTH)


def format_args(args: dict[str, Any] | None) -> str:
    if not args:
        return "{}"
    return _truncate(str(args), MAX_ARGS_LENGTH)


class LoggingPlugin(BasePlugin):
    """Logs each step of an invocation at INFO level.

    Never returns a value, so it does not change the outcome of any hook.
    """

    def __init__(self, name: str = "logging_plugin") -> None:
        super().__init__(name)

    def _log(self, message: str, *args: Any) -> None:
        logger.info(f"[{self.name}] {message}", *args)

    async def on_user_message_callback(
        self, *, invocation_context: InvocationContext, user_message: Content
    ) -> None:
        self._log(
            "USER MESSAGE RECEIVED invocation_id=%s session_id=%s user_id=%s app_name=%s "
            "root_agent=%s content=%s",
            invocation_context.invocation_id,
            invocation_context.session.id,
            invocation_context.user_id,
            invocation_context.app_name,
            invocation_context.agent.name,
            format_content(user_message),
        )

    async def before_run_callback(self, *, invocation_context: InvocationContext) -> None:
        self._log(
            "INVOCATION STARTING invocation_id=%s agent=%s",
            invocation_context.invocation_id,
            invocation_context.agent.name,
        )

    async def on_event_callback(
        self, *, invocation_context: InvocationContext, event: Event
    ) -> None:
        self._log(
            "EVENT YIELDED event_id=%s author=%s final=%s content=%s",
            event.id,
            event.author,
            event.is_final_response(),
            format_content(event.content),
        )
        if calls := event.get_function_calls():
            self._log("   function_calls=[%s]", ", ".join(c.name for c in calls))
        if responses := event.get_function_responses():
            self._log("   function_responses=[%s]", ", ".join(r.name for r in responses))
        if event.long_running_tool_ids:
            self._log("   long_running_tools=%s", sorted(event.long_running_tool_ids))

    async def after_run_callback(self, *, invocation_context: InvocationContext) -> None:
        self._log(
            "INVOCATION COMPLETED invocation_id=%s agent=%s",
            invocation_context.invocation_id,
            invocation_context.agent.name,
        )

    async def before_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> None:
        branch = callback_context.invocation_context.branch
        self._log(
            "AGENT STARTING agent=%s invocation_id=%s%s",
            agent.name,
            callback_context.invocation_id,
            f" branch={branch}" if branch else "",
        )

    async def after_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> None:
        self._log(
            "AGENT COMPLETED agent=%s invocation_id=%s",
            agent.name,
            callback_context.invocation_id,
        )

    async def before_model_callback(
        self, *, callback_context: CallbackContext, llm_request: LlmRequest
    ) -> None:
        self._log(
            "LLM REQUEST model=%s agent=%s",
            llm_request.model or "default",
            callback_context.agent_name,
        )
        if llm_request.config.system_instruction:
            self._log(
                "   system_instruction='%s'",
                _truncate(llm_request.config.system_instruction, MAX_CONTENT_LENGTH),
            )
        if llm_request.tools_dict:
            self._log("   available_tools=[%s]", ", ".join(llm_request.tools_dict))

    async def after_model_callback(
        self, *, callback_context: CallbackContext, llm_response: LlmResponse
    ) -> None:
        if llm_response.error_code:
            self._log(
                "LLM RESPONSE agent=%s error_code=%s error_message=%s",
                callback_context.agent_name,
                llm_response.error_code,
                llm_response.error_message,
            )
        else:
            self._log(
                "LLM RESPONSE agent=%s partial=%s turn_complete=%s content=%s",
                callback_context.agent_name,
                llm_response.partial,
                llm_response.turn_complete,
                format_content(llm_response.content),
            )
        if llm_response.usage:
            self._log(
                "   token_usage input=%s output=%s",
                llm_response.usage.prompt_tokens,
                llm_response.usage.completion_tokens,
            )

    async def on_model_error_callback(
        self,
        *,
        callback_context: CallbackContext,
        llm_request: LlmRequest,
        error: Exception,
    ) -> None:
        self._log("LLM ERROR agent=%s error=%s", callback_context.agent_name, error)

    async def before_tool_callback(
        self, *, tool: BaseTool, tool_args: dict[str, Any], tool_context: ToolContext
    ) -> None:
        self._log(
            "TOOL STARTING tool=%s agent=%s function_call_id=%s args=%s",
            tool.name,
            tool_context.agent_name,
            tool_context.function_call_id,
            format_args(tool_args),
        )

    async def after_tool_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        result: dict[str, Any],
    ) -> None:
        self._log(
            "TOOL COMPLETED tool=%s agent=%s function_call_id=%s result=%s",
            tool.name,
            tool_context.agent_name,
            tool_context.function_call_id,
            format_args(result),
        )

    async def on_tool_error_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        error: Exception,
    ) -> None:
        self._log(
            "TOOL ERROR tool=%s agent=%s function_call_id=%s args=%s error=%s",
            tool.name,
            tool_context.agent_name,
            tool_context.function_call_id,
            format_args(tool_args),
            error,
        )


__all__ = ["LoggingPlugin", "format_args", "format_content"]

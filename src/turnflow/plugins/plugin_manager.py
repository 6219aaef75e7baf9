"""Ordered registry and dispatcher for plugins."""

from __future__ import annotations

import logging
from threading import RLock
from typing import TYPE_CHECKING, Any

from turnflow.errors import DuplicatePluginError
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


class PluginManager:
    """Registry of plugins, dispatched in registration order.

    Dispatch is "first value wins": plugins are called in order and the first
    non-``None`` result is returned without calling the rest. A hook that
    raises is logged and the error propagates immediately; the remaining
    plugins are skipped. ``run_after_run_callback`` calls every plugin, but
    also stops at the first failure.
    """

    def __init__(self, plugins: list[BasePlugin] | None = None) -> None:
        self._plugins: list[BasePlugin] = []
        self._lock = RLock()
        for plugin in plugins or []:
            self.register_plugin(plugin)

    @property
    def plugins(self) -> list[BasePlugin]:
        with self._lock:
            return list(self._plugins)

    def register_plugin(self, plugin: BasePlugin) -> None:
        """Register a plugin, raising DuplicatePluginError on a name clash."""
        with self._lock:
            if any(p.name == plugin.name for p in self._plugins):
                raise DuplicatePluginError(plugin.name)
            self._plugins.append(plugin)
        logger.info("Plugin '%s' registered.", plugin.name)

    def get_plugin(self, plugin_name: str) -> BasePlugin | None:
        with self._lock:
            return next((p for p in self._plugins if p.name == plugin_name), None)

    async def run_on_user_message_callback(
        self, *, user_message: Content, invocation_context: InvocationContext
    ) -> Content | None:
        return await self._run_callbacks(
            "on_user_message_callback",
            user_message=user_message,
            invocation_context=invocation_context,
        )

    async def run_before_run_callback(
        self, *, invocation_context: InvocationContext
    ) -> Content | None:
        return await self._run_callbacks(
            "before_run_callback", invocation_context=invocation_context
        )

    async def run_on_event_callback(
        self, *, invocation_context: InvocationContext, event: Event
    ) -> Event | None:
        return await self._run_callbacks(
            "on_event_callback", invocation_context=invocation_context, event=event
        )

    async def run_after_run_callback(self, *, invocation_context: InvocationContext) -> None:
        for plugin in self.plugins:
            try:
                await plugin.after_run_callback(invocation_context=invocation_context)
            except Exception:
                logger.exception(
                    "[%s] Error during callback '%s'", plugin.name, "after_run_callback"
                )
                raise

    async def run_before_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> Content | None:
        return await self._run_callbacks(
            "before_agent_callback", agent=agent, callback_context=callback_context
        )

    async def run_after_agent_callback(
        self, *, agent: BaseAgent, callback_context: CallbackContext
    ) -> Content | None:
        return await self._run_callbacks(
            "after_agent_callback", agent=agent, callback_context=callback_context
        )

    async def run_before_model_callback(
        self, *, callback_context: CallbackContext, llm_request: LlmRequest
    ) -> LlmResponse | None:
        return await self._run_callbacks(
            "before_model_callback", callback_context=callback_context, llm_request=llm_request
        )

    async def run_after_model_callback(
        self, *, callback_context: CallbackContext, llm_response: LlmResponse
    ) -> LlmResponse | None:
        return await self._run_callbacks(
            "after_model_callback", callback_context=callback_context, llm_response=llm_response
        )

    async def run_on_model_error_callback(
        self,
        *,
        callback_context: CallbackContext,
        llm_request: LlmRequest,
        error: Exception,
    ) -> LlmResponse | None:
        return await self._run_callbacks(
            "on_model_error_callback",
            callback_context=callback_context,
            llm_request=llm_request,
            error=error,
        )

    async def run_before_tool_callback(
        self, *, tool: BaseTool, tool_args: dict[str, Any], tool_context: ToolContext
    ) -> dict[str, Any] | None:
        return await self._run_callbacks(
            "before_tool_callback", tool=tool, tool_args=tool_args, tool_context=tool_context
        )

    async def run_after_tool_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        result: dict[str, Any],
    ) -> dict[str, Any] | None:
        return await self._run_callbacks(
            "after_tool_callback",
            tool=tool,
            tool_args=tool_args,
            tool_context=tool_context,
            result=result,
        )

    async def run_on_tool_error_callback(
        self,
        *,
        tool: BaseTool,
        tool_args: dict[str, Any],
        tool_context: ToolContext,
        error: Exception,
    ) -> dict[str, Any] | None:
        return await self._run_callbacks(
            "on_tool_error_callback",
            tool=tool,
            tool_args=tool_args,
            tool_context=tool_context,
            error=error,
        )

    async def _run_callbacks(self, callback_name: str, **kwargs: Any) -> Any | None:
        for plugin in self.plugins:
            callback = getattr(plugin, callback_name)
            try:
                result = await callback(**kwargs)
            except Exception:
                logger.exception("[%s] Error during callback '%s'", plugin.name, callback_name)
                raise
            if result is not None:
                logger.debug(
                    "Plugin '%s' returned a value for callback '%s', exiting early.",
                    plugin.name,
                    callback_name,
                )
                return result
        return None

    async def close(self) -> None:
        """Close every plugin, then re-raise the first failure, if any."""
        first_error: Exception | None = None
        for plugin in self.plugins:
            try:
                await plugin.close()
            except Exception as e:
                logger.exception("[%s] Error while closing plugin", plugin.name)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


__all__ = ["PluginManager"]

"""Function call handling: tool execution, hooks and response events."""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
import uuid
from collections.abc import Awaitable, Iterable
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from turnflow.agents.live_request_queue import ActiveStreamingTool
from turnflow.errors import ToolNotFoundError
from turnflow.events import Event, EventActions
from turnflow.telemetry import get_tracer
from turnflow.tools.base_tool import BaseTool
from turnflow.tools.function_tool import FunctionTool
from turnflow.tools.tool_context import ToolContext
from turnflow.types import Content, FunctionCall, Part

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.agents.llm_agent import LlmAgent

logger = logging.getLogger(__name__)

CLIENT_FUNCTION_CALL_ID_PREFIX = "tf-"

_STREAMING_PENDING_RESPONSE = {
    "status": "The function is running asynchronously and the results are pending."
}
_STREAMING_ALREADY_RUNNING = (
    "Function {name} is already running. Stop it before starting it again."
)


def generate_client_function_call_id() -> str:
    return f"{CLIENT_FUNCTION_CALL_ID_PREFIX}{uuid.uuid4()}"


def populate_client_function_call_id(content: Content | None) -> Content | None:
    """Give every function call in ``content`` an id, keeping existing ones."""
    if content is None or not any(
        part.function_call and not part.function_call.id for part in content.parts
    ):
        return content
    parts = []
    for part in content.parts:
        if part.function_call and not part.function_call.id:
            part = dataclasses.replace(
                part,
                function_call=dataclasses.replace(
                    part.function_call, id=generate_client_function_call_id()
                ),
            )
        parts.append(part)
    return dataclasses.replace(content, parts=tuple(parts))


def get_long_running_function_calls(
    function_calls: Iterable[FunctionCall], tools_dict: dict[str, BaseTool]
) -> frozenset[str]:
    """Ids of the calls targeting long-running tools."""
    return frozenset(
        call.id
        for call in function_calls
        if call.id and call.name in tools_dict and tools_dict[call.name].is_long_running
    )


async def _maybe_await(value: Any | Awaitable[Any]) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class _MissingTool(BaseTool):
    """Stand-in passed to error hooks when the model calls an unknown tool."""

    def __init__(self, name: str) -> None:
        super().__init__(name=name, description="")


async def _run_before_tool_callbacks(
    agent: LlmAgent, tool: BaseTool, args: dict[str, Any], tool_context: ToolContext
) -> dict[str, Any] | None:
    plugin_manager = tool_context.invocation_context.plugin_manager
    response = await plugin_manager.run_before_tool_callback(
        tool=tool, tool_args=args, tool_context=tool_context
    )
    if response is not None:
        return response
    for callback in agent.canonical_before_tool_callbacks:
        response = await _maybe_await(callback(tool=tool, args=args, tool_context=tool_context))
        if response is not None:
            return response
    return None


async def _run_on_tool_error_callbacks(
    agent: LlmAgent,
    tool: BaseTool,
    args: dict[str, Any],
    tool_context: ToolContext,
    error: Exception,
) -> dict[str, Any] | None:
    plugin_manager = tool_context.invocation_context.plugin_manager
    response = await plugin_manager.run_on_tool_error_callback(
        tool=tool, tool_args=args, tool_context=tool_context, error=error
    )
    if response is not None:
        return response
    for callback in agent.canonical_on_tool_error_callbacks:
        response = await _maybe_await(
            callback(tool=tool, args=args, tool_context=tool_context, error=error)
        )
        if response is not None:
            return response
    return None


async def _run_after_tool_callbacks(
    agent: LlmAgent,
    tool: BaseTool,
    args: dict[str, Any],
    tool_context: ToolContext,
    tool_response: dict[str, Any],
) -> dict[str, Any] | None:
    plugin_manager = tool_context.invocation_context.plugin_manager
    response = await plugin_manager.run_after_tool_callback(
        tool=tool, tool_args=args, tool_context=tool_context, result=tool_response
    )
    if response is not None:
        return response
    for callback in agent.canonical_after_tool_callbacks:
        response = await _maybe_await(
            callback(
                tool=tool, args=args, tool_context=tool_context, tool_response=tool_response
            )
        )
        if response is not None:
            return response
    return None


def _start_streaming_tool(
    invocation_context: InvocationContext,
    tool: FunctionTool,
    args: dict[str, Any],
    tool_context: ToolContext,
) -> dict[str, Any]:
    """Run a streaming tool in the background, feeding results to the live queue.

    At most one task runs per tool name; a repeated call while it is running
    leaves the running task alone and reports so. A failure is logged and
    reported to the model as a user message, then kept on the task.
    """
    if invocation_context.active_streaming_tools is None:
        invocation_context.active_streaming_tools = {}
    active = invocation_context.active_streaming_tools.setdefault(
        tool.name, ActiveStreamingTool()
    )
    if active.task is not None and not active.task.done():
        logger.info("Streaming tool %s is already running", tool.name)
        return {"status": _STREAMING_ALREADY_RUNNING.format(name=tool.name)}

    def _report(text: str) -> None:
        if invocation_context.live_request_queue is not None:
            invocation_context.live_request_queue.send_content(
                Content.from_text(text, role="user")
            )

    async def _run() -> None:
        try:
            async with aclosing(
                tool.run_live(args=args, tool_context=tool_context, input_stream=active.stream)
            ) as results:
                async for result in results:
                    _report(f"Function {tool.name} returned: {result}")
        except Exception as e:
            logger.exception("Streaming tool %s failed", tool.name)
            _report(f"Function {tool.name} failed: {e}")
            raise

    active.task = asyncio.create_task(_run(), name=f"streaming_tool [{tool.name}]")
    logger.debug("Started streaming tool %s", tool.name)
    return dict(_STREAMING_PENDING_RESPONSE)


async def _execute_function_call(
    invocation_context: InvocationContext,
    function_call: FunctionCall,
    tools_dict: dict[str, BaseTool],
    *,
    live: bool,
) -> Event | None:
    agent: LlmAgent = invocation_context.agent  # type: ignore[assignment]
    tool = tools_dict.get(function_call.name)
    tool_context = ToolContext(invocation_context, function_call_id=function_call.id)
    args = dict(function_call.args)

    tracer = get_tracer(__name__)
    with tracer.start_as_current_span(
        f"execute_tool [{function_call.name}]",
        attributes={
            "tool.name": function_call.name,
            "tool.call_id": function_call.id or "",
        },
    ):
        response: Any = None
        if tool is not None:
            response = await _run_before_tool_callbacks(agent, tool, args, tool_context)

        if response is None:
            try:
                if tool is None:
                    raise ToolNotFoundError(function_call.name, available=sorted(tools_dict))
                if live and isinstance(tool, FunctionTool) and tool.is_streaming:
                    response = _start_streaming_tool(invocation_context, tool, args, tool_context)
                else:
                    response = await tool.run_async(args=args, tool_context=tool_context)
            except Exception as e:
                logger.warning("Tool %s failed: %s", function_call.name, e)
                response = await _run_on_tool_error_callbacks(
                    agent, tool or _MissingTool(function_call.name), args, tool_context, e
                )
                if response is None:
                    raise

            if tool is not None and tool.is_long_running and response is None:
                # Result will be supplied by a later user message
                return None

        if not isinstance(response, dict):
            response = {"result": response}

        if tool is not None:
            altered = await _run_after_tool_callbacks(agent, tool, args, tool_context, response)
            if altered is not None:
                response = altered

    return Event(
        invocation_id=invocation_context.invocation_id,
        author=agent.name,
        branch=invocation_context.branch,
        content=Content(
            role="user",
            parts=(
                Part.from_function_response(
                    name=function_call.name, response=response, id=function_call.id
                ),
            ),
        ),
        actions=tool_context.actions,
    )


def merge_parallel_function_response_events(events: list[Event]) -> Event:
    """Merge the response events of concurrently executed calls into one."""
    if not events:
        raise ValueError("No function response events provided.")
    if len(events) == 1:
        return events[0]

    parts: list[Part] = []
    merged = EventActions()
    for event in events:
        if event.content:
            parts.extend(event.content.parts)
        actions = event.actions
        merged.state_delta.update(actions.state_delta)
        merged.artifact_delta.update(actions.artifact_delta)
        merged.requested_tool_confirmations.update(actions.requested_tool_confirmations)
        merged.requested_auth_configs.update(actions.requested_auth_configs)
        if actions.transfer_to_agent:
            merged.transfer_to_agent = actions.transfer_to_agent
        if actions.escalate:
            merged.escalate = True
        if actions.skip_summarization:
            merged.skip_summarization = True

    base = events[0]
    return Event(
        invocation_id=base.invocation_id,
        author=base.author,
        branch=base.branch,
        content=Content(role="user", parts=tuple(parts)),
        actions=merged,
    )


async def _handle_function_calls(
    invocation_context: InvocationContext,
    function_call_event: Event,
    tools_dict: dict[str, BaseTool],
    *,
    live: bool,
) -> Event | None:
    function_calls = function_call_event.get_function_calls()
    if not function_calls:
        return None

    tasks = [
        asyncio.ensure_future(
            _execute_function_call(invocation_context, call, tools_dict, live=live)
        )
        for call in function_calls
    ]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    events = [event for event in results if event is not None]
    if not events:
        return None
    return merge_parallel_function_response_events(events)


async def handle_function_calls_async(
    invocation_context: InvocationContext,
    function_call_event: Event,
    tools_dict: dict[str, BaseTool],
) -> Event | None:
    """Execute the event's function calls concurrently.

    Returns:
        One event carrying every response in call order, or None when no
        call produced a response (e.g. only long-running tools were called)
    """
    return await _handle_function_calls(
        invocation_context, function_call_event, tools_dict, live=False
    )


async def handle_function_calls_live(
    invocation_context: InvocationContext,
    function_call_event: Event,
    tools_dict: dict[str, BaseTool],
) -> Event | None:
    """Live variant: streaming tools are started in the background."""
    return await _handle_function_calls(
        invocation_context, function_call_event, tools_dict, live=True
    )


__all__ = [
    "CLIENT_FUNCTION_CALL_ID_PREFIX",
    "generate_client_function_call_id",
    "get_long_running_function_calls",
    "handle_function_calls_async",
    "handle_function_calls_live",
    "merge_parallel_function_response_events",
    "populate_client_function_call_id",
]

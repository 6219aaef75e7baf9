"""Built-in live-mode tool cancelling a running streaming tool."""

import asyncio
import logging

from turnflow.tools.function_tool import FunctionTool
from turnflow.tools.tool_context import ToolContext

logger = logging.getLogger(__name__)

# Grace period for a cancelled streaming tool to run its cleanup
_CANCEL_TIMEOUT_SECONDS = 1.0


async def stop_streaming(function_name: str, tool_context: ToolContext) -> dict[str, str]:
    """Stop the streaming function with the given name.

    Args:
        function_name: The name of the streaming function to stop.
    """
    active_tools = tool_context.invocation_context.active_streaming_tools or {}
    active = active_tools.get(function_name)
    if active is None or active.task is None or active.task.done():
        return {"status": f"No active streaming function named {function_name} found"}

    active.task.cancel()
    _, pending = await asyncio.wait({active.task}, timeout=_CANCEL_TIMEOUT_SECONDS)
    if pending:
        logger.warning("Streaming function %s did not stop within timeout", function_name)
    active.task = None
    return {"status": f"Successfully stopped streaming function {function_name}"}


stop_streaming_tool = FunctionTool(stop_streaming)

__all__ = ["stop_streaming", "stop_streaming_tool"]

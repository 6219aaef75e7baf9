"""Tools: the model-callable capabilities of an agent."""

from turnflow.tools.base_tool import BaseTool
from turnflow.tools.exit_loop_tool import exit_loop, exit_loop_tool
from turnflow.tools.function_tool import FunctionTool, infer_type_schema
from turnflow.tools.stop_streaming_tool import stop_streaming, stop_streaming_tool
from turnflow.tools.tool_context import ToolContext
from turnflow.tools.transfer_to_agent_tool import transfer_to_agent, transfer_to_agent_tool

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolContext",
    "exit_loop",
    "exit_loop_tool",
    "infer_type_schema",
    "stop_streaming",
    "stop_streaming_tool",
    "transfer_to_agent",
    "transfer_to_agent_tool",
]

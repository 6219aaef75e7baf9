"""Built-in tool ending the enclosing LoopAgent."""

from turnflow.tools.function_tool import FunctionTool
from turnflow.tools.tool_context import ToolContext


def exit_loop(tool_context: ToolContext) -> None:
    """Exits the loop.

    Call this function only when you are instructed to do so.
    """
    tool_context.actions.escalate = True
    tool_context.actions.skip_summarization = True


exit_loop_tool = FunctionTool(exit_loop)

__all__ = ["exit_loop", "exit_loop_tool"]

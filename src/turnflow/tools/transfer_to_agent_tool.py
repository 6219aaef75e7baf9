"""Built-in tool letting the model hand the conversation to another agent."""

from turnflow.tools.function_tool import FunctionTool
from turnflow.tools.tool_context import ToolContext


def transfer_to_agent(agent_name: str, tool_context: ToolContext) -> None:
    """Transfer the question to another agent.

    This tool hands off control to another agent when it's more suitable to
    answer the user's question according to the agent's description.

    Args:
        agent_name: the agent name to transfer to.
    """
    tool_context.actions.transfer_to_agent = agent_name


transfer_to_agent_tool = FunctionTool(transfer_to_agent)

__all__ = ["transfer_to_agent", "transfer_to_agent_tool"]

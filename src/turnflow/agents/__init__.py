"""Agent tree, invocation context and agent selection."""

# Context modules first: tools and flows import them while LlmAgent loads.
from turnflow.agents.run_config import RunConfig, StreamingMode
from turnflow.agents.live_request_queue import ActiveStreamingTool, LiveRequest, LiveRequestQueue
from turnflow.agents.invocation_context import InvocationContext, new_invocation_context_id
from turnflow.agents.callback_context import CallbackContext, ReadonlyContext
from turnflow.agents.base_agent import BaseAgent
from turnflow.agents.llm_agent import LlmAgent
from turnflow.agents.loop_agent import LoopAgent
from turnflow.agents.parallel_agent import ParallelAgent
from turnflow.agents.sequential_agent import SequentialAgent
from turnflow.agents.transfer import find_agent_to_run, is_transferable_across_agent_tree

__all__ = [
    "ActiveStreamingTool",
    "BaseAgent",
    "CallbackContext",
    "InvocationContext",
    "LiveRequest",
    "LiveRequestQueue",
    "LlmAgent",
    "LoopAgent",
    "ParallelAgent",
    "ReadonlyContext",
    "RunConfig",
    "SequentialAgent",
    "StreamingMode",
    "find_agent_to_run",
    "is_transferable_across_agent_tree",
    "new_invocation_context_id",
]

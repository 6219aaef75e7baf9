"""turnflow: orchestration engine for multi-agent LLM invocations.

Quick start:
    from turnflow import InMemoryRunner, LlmAgent, Content

    agent = LlmAgent(name="assistant", model="openai/gpt-4o-mini", instruction="Be brief.")
    runner = InMemoryRunner(agent)
"""

__version__ = "0.1.0"

# Agents first: it wires flows and tools in dependency order.
from turnflow.agents import (
    BaseAgent,
    CallbackContext,
    InvocationContext,
    LiveRequest,
    LiveRequestQueue,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    ReadonlyContext,
    RunConfig,
    SequentialAgent,
    StreamingMode,
)
from turnflow.errors import (
    AgentNotFoundError,
    ConfigurationError,
    SessionNotFoundError,
    ToolNotFoundError,
    TurnflowError,
)
from turnflow.events import Event, EventActions
from turnflow.plugins import BasePlugin, LoggingPlugin, PluginManager, ReplayPlugin
from turnflow.runners import InMemoryRunner, Runner
from turnflow.sessions import InMemorySessionService, Session, State
from turnflow.tools import BaseTool, FunctionTool, ToolContext
from turnflow.types import Blob, Content, FunctionCall, FunctionResponse, Part

__all__ = [
    "AgentNotFoundError",
    "BaseAgent",
    "BasePlugin",
    "BaseTool",
    "Blob",
    "CallbackContext",
    "ConfigurationError",
    "Content",
    "Event",
    "EventActions",
    "FunctionCall",
    "FunctionResponse",
    "FunctionTool",
    "InMemoryRunner",
    "InMemorySessionService",
    "InvocationContext",
    "LiveRequest",
    "LiveRequestQueue",
    "LlmAgent",
    "LoggingPlugin",
    "LoopAgent",
    "ParallelAgent",
    "Part",
    "PluginManager",
    "ReadonlyContext",
    "ReplayPlugin",
    "Runner",
    "RunConfig",
    "SequentialAgent",
    "Session",
    "SessionNotFoundError",
    "State",
    "StreamingMode",
    "ToolContext",
    "ToolNotFoundError",
    "TurnflowError",
    "__version__",
]

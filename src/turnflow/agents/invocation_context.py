"""Per-invocation context threaded through the agent tree."""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from turnflow.agents.live_request_queue import ActiveStreamingTool, LiveRequestQueue
from turnflow.agents.run_config import RunConfig
from turnflow.errors import LlmCallsLimitExceededError
from turnflow.sessions.base_session_service import BaseSessionService
from turnflow.sessions.session import Session
from turnflow.types import Content

if TYPE_CHECKING:
    from turnflow.agents.base_agent import BaseAgent
    from turnflow.artifacts.base_artifact_service import BaseArtifactService
    from turnflow.plugins.plugin_manager import PluginManager


def new_invocation_context_id() -> str:
    """Generate a globally unique invocation id."""
    return "e-" + str(uuid.uuid4())


class _InvocationCostManager:
    """Counters shared by every copy of one invocation's context."""

    def __init__(self) -> None:
        self._number_of_llm_calls = 0

    @property
    def number_of_llm_calls(self) -> int:
        return self._number_of_llm_calls

    def increment_and_enforce_llm_calls_limit(self, run_config: RunConfig | None) -> None:
        self._number_of_llm_calls += 1
        if (
            run_config
            and run_config.max_llm_calls > 0
            and self._number_of_llm_calls > run_config.max_llm_calls
        ):
            raise LlmCallsLimitExceededError(run_config.max_llm_calls)


@dataclass(kw_only=True)
class InvocationContext:
    """Collaborators and state of one runner invocation.

    Created once per ``Runner.run_async``/``run_live`` call and passed by
    reference. Each agent works on a ``model_copy`` pointing at itself; the
    copies share the session, the services and the LLM call counter.

    Attributes:
        invocation_id: Groups every event of this invocation
        agent: The agent this copy of the context belongs to
        branch: Dotted agent path isolating a sub-agent's history
        end_invocation: Set by any component to stop this agent's work early
        active_streaming_tools: Live mode streaming tools, by tool name
    """

    session_service: BaseSessionService
    artifact_service: BaseArtifactService | None = None
    plugin_manager: PluginManager
    invocation_id: str
    agent: BaseAgent
    session: Session
    user_content: Content | None = None
    run_config: RunConfig = field(default_factory=RunConfig)
    live_request_queue: LiveRequestQueue | None = None
    branch: str | None = None
    end_invocation: bool = False
    active_streaming_tools: dict[str, ActiveStreamingTool] | None = None
    _cost_manager: _InvocationCostManager = field(
        default_factory=_InvocationCostManager, repr=False
    )

    @property
    def app_name(self) -> str:
        return self.session.app_name

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def number_of_llm_calls(self) -> int:
        return self._cost_manager.number_of_llm_calls

    def increment_llm_call_count(self) -> None:
        """Count one backend call, raising LlmCallsLimitExceededError past the limit."""
        self._cost_manager.increment_and_enforce_llm_calls_limit(self.run_config)

    def model_copy(self, **changes: Any) -> InvocationContext:
        """Shallow copy with ``changes`` applied, sharing the call counter."""
        return dataclasses.replace(self, **changes)


__all__ = ["InvocationContext", "new_invocation_context_id"]

"""Plugin replaying recorded LLM and tool interactions.

Replay is switched on per session: when the session state holds
``_replay_config = {"dir": <case dir>, "user_message_index": <n>}`` the plugin
loads ``<case dir>/<recordings file>`` at the start of each invocation and
answers every model call and tool call of each agent from the recordings of
that user message, in order, verifying that the run still makes the same
requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

from turnflow.config import get_settings
from turnflow.errors import ReplayConfigError, ReplayVerificationError
from turnflow.plugins.base_plugin import BasePlugin
from turnflow.plugins.recordings import (
    LlmRecording,
    Recording,
    Recordings,
    ToolRecording,
    load_recordings,
)
from turnflow.plugins.request_comparator import requests_match, to_comparison_dict

if TYPE_CHECKING:
    from turnflow.agents.callback_context import CallbackContext
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.models.llm_request import LlmRequest
    from turnflow.models.llm_response import LlmResponse
    from turnflow.sessions.state import State
    from turnflow.tools.base_tool import BaseTool
    from turnflow.tools.tool_context import ToolContext

logger = logging.getLogger(__name__)

REPLAY_CONFIG_KEY = "_replay_config"


@dataclass(kw_only=True)
class InvocationReplayState:
    """Replay progress of one invocation.

    Attributes:
        case_dir: Directory holding the recordings file
        user_message_index: Which user message of the case is being replayed
        recordings: Every recording of the case
        agent_replay_indices: Next recording to consume, per agent
    """

    case_dir: str
    user_message_index: int
    recordings: Recordings
    agent_replay_indices: dict[str, int] = field(default_factory=dict)

    def next_recording(self, agent_name: str) -> tuple[int, Recording]:
        """Consume the agent's next recording for this user message."""
        index = self.agent_replay_indices.get(agent_name, 0)
        agent_recordings = [
            r
            for r in self.recordings.recordings
            if r.agent_name == agent_name and r.user_message_index == self.user_message_index
        ]
        if index >= len(agent_recordings):
            raise ReplayVerificationError(
                f"Runtime sent more requests than expected for agent '{agent_name}' at "
                f"user_message_index {self.user_message_index}. Expected "
                f"{len(agent_recordings)}, but got request at index {index}"
            )
        self.agent_replay_indices[agent_name] = index + 1
        return index, agent_recordings[index]


def _replay_config(state: State) -> dict[str, Any] | None:
    config = state.get(REPLAY_CONFIG_KEY)
    if not isinstance(config, dict):
        return None
    if config.get("dir") is None or config.get("user_message_index") is None:
        return None
    return config


class ReplayPlugin(BasePlugin):
    """Answers model and tool calls from recordings instead of running them.

    Tools are still executed for their side effects; their results are
    discarded in favour of the recorded response.
    """

    def __init__(self, name: str = "replay_plugin") -> None:
        super().__init__(name)
        self._invocation_states: dict[str, InvocationReplayState] = {}
        self._lock = RLock()

    async def before_run_callback(self, *, invocation_context: InvocationContext) -> None:
        if REPLAY_CONFIG_KEY not in invocation_context.session.state:
            return None
        config = _replay_config(invocation_context.session.state)
        if config is None:
            raise ReplayConfigError(
                "Replay parameters are missing from session state",
                details={"session_id": invocation_context.session.id},
            )
        case_dir = str(config["dir"])
        recordings_file = Path(case_dir) / get_settings().replay_recordings_filename
        recordings = load_recordings(recordings_file)
        state = InvocationReplayState(
            case_dir=case_dir,
            user_message_index=int(config["user_message_index"]),
            recordings=recordings,
        )
        with self._lock:
            self._invocation_states[invocation_context.invocation_id] = state
        logger.debug(
            "Loaded replay state for invocation %s: case_dir=%s, msg_index=%s, recordings=%d",
            invocation_context.invocation_id,
            case_dir,
            state.user_message_index,
            len(recordings.recordings),
        )
        return None

    async def before_model_callback(
        self, *, callback_context: CallbackContext, llm_request: LlmRequest
    ) -> LlmResponse | None:
        state = self._get_state(callback_context)
        if state is None:
            return None

        agent_name = callback_context.agent_name
        index, recording = state.next_recording(agent_name)
        llm_recording: LlmRecording | None = recording.llm_recording
        if llm_recording is None:
            raise ReplayVerificationError(
                f"Expected LLM recording for agent '{agent_name}' at index {index}, "
                "but found tool recording"
            )
        if llm_recording.llm_request is not None and not requests_match(
            llm_recording.llm_request, llm_request
        ):
            raise ReplayVerificationError(
                f"LLM request mismatch for agent '{agent_name}' (index {index})",
                expected=to_comparison_dict(llm_recording.llm_request),
                actual=to_comparison_dict(llm_request),
            )
        logger.debug("Verified and replaying LLM response for agent %s", agent_name)
        return llm_recording.to_llm_response()

    async def before_tool_callback(
        self, *, tool: BaseTool, tool_args: dict[str, Any], tool_context: ToolContext
    ) -> dict[str, Any] | None:
        state = self._get_state(tool_context)
        if state is None:
            return None

        agent_name = tool_context.agent_name
        index, recording = state.next_recording(agent_name)
        tool_recording: ToolRecording | None = recording.tool_recording
        if tool_recording is None:
            raise ReplayVerificationError(
                f"Expected tool recording for agent '{agent_name}' at index {index}, "
                "but found LLM recording"
            )
        recorded_call = tool_recording.to_function_call()
        if recorded_call is not None:
            if recorded_call.name != tool.name:
                raise ReplayVerificationError(
                    f"Tool name mismatch for agent '{agent_name}' at index {index}",
                    expected=recorded_call.name,
                    actual=tool.name,
                )
            if recorded_call.args != tool_args:
                raise ReplayVerificationError(
                    f"Tool args mismatch for agent '{agent_name}' at index {index}",
                    expected=recorded_call.args,
                    actual=tool_args,
                )

        try:
            live_result = await tool.run_async(args=tool_args, tool_context=tool_context)
            logger.debug("Tool %s executed during replay with result: %s", tool.name, live_result)
        except Exception as e:
            logger.warning(f"Error executing tool {tool.name} during replay: {e}")

        logger.debug(
            "Verified and replaying tool response for agent %s: tool=%s", agent_name, tool.name
        )
        recorded_response = tool_recording.to_function_response()
        return recorded_response.response if recorded_response is not None else None

    async def after_run_callback(self, *, invocation_context: InvocationContext) -> None:
        with self._lock:
            removed = self._invocation_states.pop(invocation_context.invocation_id, None)
        if removed is not None:
            logger.debug(
                "Cleaned up replay state for invocation %s", invocation_context.invocation_id
            )
        return None

    def _get_state(self, callback_context: CallbackContext) -> InvocationReplayState | None:
        invocation_context = callback_context.invocation_context
        if _replay_config(invocation_context.session.state) is None:
            return None
        with self._lock:
            state = self._invocation_states.get(invocation_context.invocation_id)
        if state is None:
            raise ReplayConfigError(
                "Replay state not initialized. Ensure before_run_callback created it.",
                details={"invocation_id": invocation_context.invocation_id},
            )
        return state


__all__ = ["REPLAY_CONFIG_KEY", "InvocationReplayState", "ReplayPlugin"]

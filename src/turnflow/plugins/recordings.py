"""
Pydantic models for recorded invocations, used by ReplayPlugin.

A recordings file is YAML of the form:

    recordings:
      - user_message_index: 0
        agent_name: root_agent
        llm_recording:
          llm_request: {...}     # LlmRequest.to_dict()
          llm_response: {...}    # LlmResponse.to_dict()
      - user_message_index: 0
        agent_name: root_agent
        tool_recording:
          tool_call: {name: get_weather, args: {city: Paris}}
          tool_response: {name: get_weather, response: {forecast: sunny}}
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from turnflow.errors import ReplayConfigError
from turnflow.models.llm_response import LlmResponse
from turnflow.types import FunctionCall, FunctionResponse


class LlmRecording(BaseModel):
    """One recorded backend call."""

    model_config = ConfigDict(extra="ignore")

    llm_request: dict[str, Any] | None = None
    llm_response: dict[str, Any] | None = None

    def to_llm_response(self) -> LlmResponse | None:
        if self.llm_response is None:
            return None
        return LlmResponse.from_dict(self.llm_response)


class ToolRecording(BaseModel):
    """One recorded tool call."""

    model_config = ConfigDict(extra="ignore")

    tool_call: dict[str, Any] | None = None
    tool_response: dict[str, Any] | None = None

    def to_function_call(self) -> FunctionCall | None:
        if self.tool_call is None:
            return None
        return FunctionCall.from_dict(self.tool_call)

    def to_function_response(self) -> FunctionResponse | None:
        if self.tool_response is None:
            return None
        return FunctionResponse.from_dict(self.tool_response)


class Recording(BaseModel):
    """A recorded interaction of one agent, either an LLM call or a tool call."""

    model_config = ConfigDict(extra="ignore")

    user_message_index: int
    agent_name: str
    llm_recording: LlmRecording | None = None
    tool_recording: ToolRecording | None = None

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "Recording":
        if (self.llm_recording is None) == (self.tool_recording is None):
            raise ValueError("A recording holds exactly one of llm_recording or tool_recording")
        return self


class Recordings(BaseModel):
    """All recordings of a test case, in the order they happened."""

    recordings: list[Recording] = Field(default_factory=list)


def load_recordings(path: str | Path) -> Recordings:
    """Load and validate a recordings YAML file.

    Raises:
        ReplayConfigError: If the file is missing, not YAML, or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ReplayConfigError(
            f"Recordings file not found: {path}", details={"path": str(path)}
        )
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ReplayConfigError(
            f"Failed to load recordings from {path}: {e}", details={"path": str(path)}
        ) from e
    try:
        return Recordings.model_validate(data)
    except ValidationError as e:
        raise ReplayConfigError(
            f"Invalid recordings in {path}: {e}", details={"path": str(path)}
        ) from e


__all__ = [
    "LlmRecording",
    "Recording",
    "Recordings",
    "ToolRecording",
    "load_recordings",
]

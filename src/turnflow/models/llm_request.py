"""Request sent to the reasoning backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from turnflow.types import Content

if TYPE_CHECKING:
    from turnflow.tools.base_tool import BaseTool


@dataclass(frozen=True, kw_only=True)
class FunctionDeclaration:
    """Tool schema advertised to the model (JSON Schema parameters)."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FunctionDeclaration:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            parameters=data.get("parameters") or {"type": "object", "properties": {}},
        )


@dataclass(kw_only=True)
class GenerateContentConfig:
    """Generation parameters for one backend call."""

    system_instruction: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    stop_sequences: list[str] | None = None
    response_modalities: list[str] | None = None
    tools: list[FunctionDeclaration] = field(default_factory=list)
    http_options: dict[str, Any] | None = None
    labels: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "system_instruction": self.system_instruction,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_output_tokens": self.max_output_tokens,
            "stop_sequences": self.stop_sequences,
            "response_modalities": self.response_modalities,
            "tools": [t.to_dict() for t in self.tools],
            "http_options": self.http_options,
            "labels": dict(self.labels),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerateContentConfig:
        return cls(
            system_instruction=data.get("system_instruction"),
            temperature=data.get("temperature"),
            top_p=data.get("top_p"),
            max_output_tokens=data.get("max_output_tokens"),
            stop_sequences=data.get("stop_sequences"),
            response_modalities=data.get("response_modalities"),
            tools=[FunctionDeclaration.from_dict(t) for t in data.get("tools") or []],
            http_options=data.get("http_options"),
            labels=dict(data.get("labels") or {}),
        )


@dataclass(kw_only=True)
class LiveConnectConfig:
    """Parameters of a duplex (live) backend connection."""

    response_modalities: list[str] | None = None
    input_audio_transcription: bool | None = None
    output_audio_transcription: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "response_modalities": self.response_modalities,
            "input_audio_transcription": self.input_audio_transcription,
            "output_audio_transcription": self.output_audio_transcription,
        }


@dataclass(kw_only=True)
class LlmRequest:
    """Request assembled by the request processor chain.

    Attributes:
        model: Backend model name
        contents: Conversation history sent to the model
        config: Generation parameters, including the system instruction
        live_connect_config: Parameters used only by live connections
        tools_dict: Tools by name, used to execute the model's function calls
    """

    model: str | None = None
    contents: list[Content] = field(default_factory=list)
    config: GenerateContentConfig = field(default_factory=GenerateContentConfig)
    live_connect_config: LiveConnectConfig = field(default_factory=LiveConnectConfig)
    tools_dict: dict[str, BaseTool] = field(default_factory=dict)

    def append_instructions(self, instructions: list[str]) -> None:
        """Append instructions to the system instruction, separated by blank lines."""
        if not instructions:
            return
        joined = "\n\n".join(instructions)
        if self.config.system_instruction:
            self.config.system_instruction += "\n\n" + joined
        else:
            self.config.system_instruction = joined

    def append_tools(self, tools: list[BaseTool]) -> None:
        """Advertise tools to the model and register them for execution."""
        for tool in tools:
            declaration = tool.get_declaration()
            if declaration is not None:
                self.config.tools.append(declaration)
            self.tools_dict[tool.name] = tool

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "contents": [c.to_dict() for c in self.contents],
            "config": self.config.to_dict(),
            "live_connect_config": self.live_connect_config.to_dict(),
        }


__all__ = ["FunctionDeclaration", "GenerateContentConfig", "LiveConnectConfig", "LlmRequest"]

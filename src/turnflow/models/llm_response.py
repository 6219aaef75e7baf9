"""Response returned by the reasoning backend."""

from dataclasses import dataclass, field
from typing import Any

from turnflow.types import Content


@dataclass(frozen=True, kw_only=True)
class Usage:
    """Token usage tracking."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, kw_only=True)
class LlmResponse:
    """One (possibly partial) backend response.

    Attributes:
        content: Model output, role ``model``
        partial: True for a streaming fragment that a later response completes
        turn_complete: Live mode: the model finished its turn
        interrupted: Live mode: the user interrupted the model
        error_code: Backend-reported error code, if any
        error_message: Backend-reported error message, if any
        finish_reason: Why generation stopped
        usage: Token usage, when the backend reports it
    """

    content: Content | None = None
    partial: bool | None = None
    turn_complete: bool | None = None
    interrupted: bool | None = None
    error_code: str | None = None
    error_message: str | None = None
    finish_reason: str | None = None
    usage: Usage | None = None
    custom_metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.content is not None:
            result["content"] = self.content.to_dict()
        for name in ("partial", "turn_complete", "interrupted", "error_code", "error_message",
                     "finish_reason"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.usage is not None:
            result["usage"] = self.usage.to_dict()
        if self.custom_metadata:
            result["custom_metadata"] = dict(self.custom_metadata)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LlmResponse":
        return cls(
            content=Content.from_dict(data["content"]) if data.get("content") else None,
            partial=data.get("partial"),
            turn_complete=data.get("turn_complete"),
            interrupted=data.get("interrupted"),
            error_code=data.get("error_code"),
            error_message=data.get("error_message"),
            finish_reason=data.get("finish_reason"),
            usage=Usage(**data["usage"]) if data.get("usage") else None,
            custom_metadata=dict(data.get("custom_metadata") or {}),
        )


__all__ = ["LlmResponse", "Usage"]

"""Content payload types exchanged between users, agents, tools and models.

All types are immutable (frozen dataclass). ``to_dict``/``from_dict`` give a
JSON-friendly form, used by recordings and by request comparison.
"""

import base64
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, kw_only=True)
class Blob:
    """Inline binary data with its MIME type."""

    mime_type: str
    data: bytes
    display_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "mime_type": self.mime_type,
            "data": base64.urlsafe_b64encode(self.data).decode("ascii"),
        }
        if self.display_name:
            result["display_name"] = self.display_name
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Blob":
        return cls(
            mime_type=data["mime_type"],
            data=base64.urlsafe_b64decode(data.get("data", "")),
            display_name=data.get("display_name"),
        )


@dataclass(frozen=True, kw_only=True)
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": dict(self.args)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FunctionCall":
        return cls(id=data.get("id"), name=data["name"], args=dict(data.get("args") or {}))


@dataclass(frozen=True, kw_only=True)
class FunctionResponse:
    """The result of a tool invocation, sent back to the model."""

    name: str
    response: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "response": dict(self.response)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FunctionResponse":
        return cls(
            id=data.get("id"), name=data["name"], response=dict(data.get("response") or {})
        )


@dataclass(frozen=True, kw_only=True)
class Part:
    """One piece of a Content: exactly one field is expected to be set."""

    text: str | None = None
    inline_data: Blob | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None
    thought: bool = False

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, display_name: str | None = None) -> "Part":
        return cls(inline_data=Blob(mime_type=mime_type, data=data, display_name=display_name))

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any], id: str | None = None) -> "Part":
        return cls(function_call=FunctionCall(id=id, name=name, args=args))

    @classmethod
    def from_function_response(
        cls, name: str, response: dict[str, Any], id: str | None = None
    ) -> "Part":
        return cls(function_response=FunctionResponse(id=id, name=name, response=response))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.text is not None:
            result["text"] = self.text
        if self.inline_data is not None:
            result["inline_data"] = self.inline_data.to_dict()
        if self.function_call is not None:
            result["function_call"] = self.function_call.to_dict()
        if self.function_response is not None:
            result["function_response"] = self.function_response.to_dict()
        if self.thought:
            result["thought"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Part":
        return cls(
            text=data.get("text"),
            inline_data=Blob.from_dict(data["inline_data"]) if data.get("inline_data") else None,
            function_call=(
                FunctionCall.from_dict(data["function_call"])
                if data.get("function_call")
                else None
            ),
            function_response=(
                FunctionResponse.from_dict(data["function_response"])
                if data.get("function_response")
                else None
            ),
            thought=bool(data.get("thought", False)),
        )


@dataclass(frozen=True, kw_only=True)
class Content:
    """A role-tagged list of parts: one turn of the conversation."""

    role: str | None = None
    parts: tuple[Part, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable tuple
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))

    @classmethod
    def from_text(cls, text: str, role: str = "user") -> "Content":
        return cls(role=role, parts=(Part(text=text),))

    @property
    def text(self) -> str:
        """Concatenated text of all non-thought text parts."""
        return "".join(p.text for p in self.parts if p.text and not p.thought)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [p.to_dict() for p in self.parts]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Content":
        return cls(
            role=data.get("role"),
            parts=tuple(Part.from_dict(p) for p in data.get("parts") or []),
        )


__all__ = ["Blob", "Content", "FunctionCall", "FunctionResponse", "Part"]

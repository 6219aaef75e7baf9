"""Base class for tools the model can call."""

from __future__ import annotations

from abc import ABC
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from turnflow.models.llm_request import FunctionDeclaration, LlmRequest
    from turnflow.tools.tool_context import ToolContext


class BaseTool(ABC):
    """A named capability the model can invoke.

    Subclasses override ``get_declaration`` to advertise a schema and
    ``run_async`` to execute. Long-running tools may return ``None`` to
    signal that their result will arrive later.
    """

    def __init__(self, *, name: str, description: str, is_long_running: bool = False) -> None:
        self.name = name
        self.description = description
        self.is_long_running = is_long_running

    def get_declaration(self) -> FunctionDeclaration | None:
        """Return the schema advertised to the model, or None to stay hidden."""
        return None

    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        """Execute the tool with the model-supplied arguments."""
        raise NotImplementedError(f"{type(self).__name__} does not implement run_async")

    async def process_llm_request(
        self, *, tool_context: ToolContext, llm_request: LlmRequest
    ) -> None:
        """Add this tool to an outgoing request."""
        llm_request.append_tools([self])

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


__all__ = ["BaseTool"]

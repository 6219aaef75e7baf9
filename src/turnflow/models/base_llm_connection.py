"""Duplex connection to a reasoning backend, used by live mode."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator

from turnflow.models.llm_response import LlmResponse
from turnflow.types import Blob, Content


class BaseLlmConnection(ABC):
    """A live connection: content is pushed in, responses stream out."""

    @abstractmethod
    async def send_history(self, history: list[Content]) -> None:
        """Send the conversation history that precedes live input."""

    @abstractmethod
    async def send_content(self, content: Content) -> None:
        """Send a complete turn (text or function responses)."""

    @abstractmethod
    async def send_realtime(self, blob: Blob) -> None:
        """Send a chunk of realtime input such as audio."""

    @abstractmethod
    def receive(self) -> AsyncGenerator[LlmResponse, None]:
        """Stream responses until the connection closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""


__all__ = ["BaseLlmConnection"]

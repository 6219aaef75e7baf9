"""Reasoning backend contract."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import AbstractAsyncContextManager

from turnflow.models.base_llm_connection import BaseLlmConnection
from turnflow.models.llm_request import LlmRequest
from turnflow.models.llm_response import LlmResponse


class BaseLlm(ABC):
    """A reasoning backend: given a request, returns responses.

    Example:
        class MyLlm(BaseLlm):
            async def generate_content_async(self, llm_request, stream=False):
                yield LlmResponse(content=Content.from_text("hi", role="model"))
    """

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    def generate_content_async(
        self, llm_request: LlmRequest, stream: bool = False
    ) -> AsyncGenerator[LlmResponse, None]:
        """Generate responses for a request.

        Args:
            llm_request: Request built by the processor chain
            stream: When True, yield partial responses followed by a final one

        Yields:
            LlmResponse objects; exactly one when ``stream`` is False
        """

    def connect(self, llm_request: LlmRequest) -> AbstractAsyncContextManager[BaseLlmConnection]:
        """Open a duplex connection for live mode.

        Returns:
            An async context manager yielding the connection; leaving it closes
            the connection
        """
        raise NotImplementedError(f"Live connection is not supported for {self.model}.")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r})"


__all__ = ["BaseLlm"]

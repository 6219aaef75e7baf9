"""Reasoning backend interfaces and adapters."""

from turnflow.models.base_llm import BaseLlm
from turnflow.models.base_llm_connection import BaseLlmConnection
from turnflow.models.lite_llm import LiteLlm
from turnflow.models.llm_request import (
    FunctionDeclaration,
    GenerateContentConfig,
    LiveConnectConfig,
    LlmRequest,
)
from turnflow.models.llm_response import LlmResponse, Usage

__all__ = [
    "BaseLlm",
    "BaseLlmConnection",
    "FunctionDeclaration",
    "GenerateContentConfig",
    "LiteLlm",
    "LiveConnectConfig",
    "LlmRequest",
    "LlmResponse",
    "Usage",
]

"""LLM flow: processor chains, backend calls and tool execution."""

from turnflow.flows.agent_transfer import AgentTransferRequestProcessor
from turnflow.flows.basic import BasicRequestProcessor
from turnflow.flows.contents import ContentsRequestProcessor
from turnflow.flows.identity import IdentityRequestProcessor
from turnflow.flows.instructions import InstructionsRequestProcessor, inject_session_state
from turnflow.flows.llm_flow import LlmFlow
from turnflow.flows.processors import (
    RequestProcessingResult,
    RequestProcessor,
    ResponseProcessingResult,
    ResponseProcessor,
    run_request_processors,
    run_response_processors,
)

__all__ = [
    "AgentTransferRequestProcessor",
    "BasicRequestProcessor",
    "ContentsRequestProcessor",
    "IdentityRequestProcessor",
    "InstructionsRequestProcessor",
    "LlmFlow",
    "RequestProcessingResult",
    "RequestProcessor",
    "ResponseProcessingResult",
    "ResponseProcessor",
    "inject_session_state",
    "run_request_processors",
    "run_response_processors",
]

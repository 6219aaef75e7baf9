"""Basic request setup: model name, generation config and live config."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from turnflow.flows.processors import RequestProcessingResult
from turnflow.models.llm_request import GenerateContentConfig, LiveConnectConfig, LlmRequest

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext


class BasicRequestProcessor:
    """Copies the agent's model and generation config into the request."""

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult:
        from turnflow.agents.llm_agent import LlmAgent

        agent = ctx.agent
        if not isinstance(agent, LlmAgent):
            return RequestProcessingResult(updated_request=llm_request)

        llm_request.model = agent.canonical_model.model
        llm_request.config = (
            copy.deepcopy(agent.generate_content_config)
            if agent.generate_content_config
            else GenerateContentConfig()
        )
        run_config = ctx.run_config
        llm_request.live_connect_config = LiveConnectConfig(
            response_modalities=run_config.response_modalities,
            input_audio_transcription=run_config.input_audio_transcription,
            output_audio_transcription=run_config.output_audio_transcription,
        )
        return RequestProcessingResult(updated_request=llm_request)


__all__ = ["BasicRequestProcessor"]

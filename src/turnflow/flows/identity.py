"""Identity instructions: tells the model which agent it is."""

from __future__ import annotations

from typing import TYPE_CHECKING

from turnflow.flows.processors import RequestProcessingResult
from turnflow.models.llm_request import LlmRequest

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext


class IdentityRequestProcessor:
    """Appends the agent's name and description to the system instruction."""

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult:
        agent = ctx.agent
        llm_request.append_instructions(
            [
                f'You are an agent. Your internal name is "{agent.name}".',
                f' The description about you is "{agent.description}"',
            ]
        )
        return RequestProcessingResult(updated_request=llm_request)


__all__ = ["IdentityRequestProcessor"]

"""Transfer instructions and the transfer_to_agent tool."""

from __future__ import annotations

from typing import TYPE_CHECKING

from turnflow.flows.processors import RequestProcessingResult
from turnflow.models.llm_request import LlmRequest
from turnflow.tools.tool_context import ToolContext
from turnflow.tools.transfer_to_agent_tool import transfer_to_agent_tool

if TYPE_CHECKING:
    from turnflow.agents.base_agent import BaseAgent
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.agents.llm_agent import LlmAgent


def _get_transfer_targets(agent: LlmAgent) -> list[BaseAgent]:
    from turnflow.agents.llm_agent import LlmAgent

    targets: list[BaseAgent] = list(agent.sub_agents)
    parent = agent.parent_agent
    if parent is None or not isinstance(parent, LlmAgent):
        return targets
    if not agent.disallow_transfer_to_parent:
        targets.append(parent)
    if not agent.disallow_transfer_to_peers:
        targets.extend(peer for peer in parent.sub_agents if peer.name != agent.name)
    return targets


def _build_target_agents_instructions(agent: LlmAgent, targets: list[BaseAgent]) -> str:
    target_info = "\n".join(
        f"Agent name: {target.name}\nAgent description: {target.description}\n"
        for target in targets
    )
    instruction = (
        "You can transfer the conversation to one of these agents:\n\n"
        f"{target_info}\n"
        "If your own description makes you the best fit for the question, answer it "
        "yourself.\n\n"
        "If another agent's description makes it a better fit, call the "
        f"`{transfer_to_agent_tool.name}` function to transfer the question to that "
        "agent. When transferring, do not generate any text other than the function call.\n"
    )
    parent = agent.parent_agent
    if parent is not None and not agent.disallow_transfer_to_parent:
        instruction += (
            f"\nYour parent agent is {parent.name}. If neither the other agents nor you "
            "are the best fit for the question, transfer to your parent agent.\n"
        )
    return instruction


class AgentTransferRequestProcessor:
    """Advertises the agents this agent may hand the turn to."""

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult:
        from turnflow.agents.llm_agent import LlmAgent

        agent = ctx.agent
        if not isinstance(agent, LlmAgent):
            return RequestProcessingResult(updated_request=llm_request)

        targets = _get_transfer_targets(agent)
        if not targets:
            return RequestProcessingResult(updated_request=llm_request)

        llm_request.append_instructions([_build_target_agents_instructions(agent, targets)])
        await transfer_to_agent_tool.process_llm_request(
            tool_context=ToolContext(ctx), llm_request=llm_request
        )
        return RequestProcessingResult(updated_request=llm_request)


__all__ = ["AgentTransferRequestProcessor"]

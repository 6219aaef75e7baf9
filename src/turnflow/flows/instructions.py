"""Instruction resolution and session state injection."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from turnflow.agents.callback_context import ReadonlyContext
from turnflow.errors import ConfigurationError
from turnflow.flows.processors import RequestProcessingResult
from turnflow.models.llm_request import LlmRequest
from turnflow.sessions.state import State

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext

logger = logging.getLogger(__name__)

_PLACEHOLDER_PATTERN = re.compile(r"{+[^{}]*}+")
_ARTIFACT_PREFIX = "artifact."
_STATE_PREFIXES = (State.APP_PREFIX, State.USER_PREFIX, State.TEMP_PREFIX)


def _is_valid_state_name(var_name: str) -> bool:
    parts = var_name.split(":")
    if len(parts) == 1:
        return var_name.isidentifier()
    if len(parts) == 2:
        return f"{parts[0]}:" in _STATE_PREFIXES and parts[1].isidentifier()
    return False


async def inject_session_state(template: str, readonly_context: ReadonlyContext) -> str:
    """Replace state placeholders in an instruction template.

    - ``{key}``: ``str(state[key])``; a missing key raises KeyError
    - ``{key?}``: as above, but a missing key becomes an empty string
    - ``{artifact.name}``: text of the named artifact
    - anything else in braces (not a valid state name) is left untouched
    """
    invocation_context = readonly_context.invocation_context
    state = readonly_context.state

    async def _replace(match: re.Match[str]) -> str:
        var_name = match.group().lstrip("{").rstrip("}").strip()
        optional = var_name.endswith("?")
        if optional:
            var_name = var_name[:-1]

        if var_name.startswith(_ARTIFACT_PREFIX):
            filename = var_name[len(_ARTIFACT_PREFIX) :]
            service = invocation_context.artifact_service
            if service is None:
                raise ValueError("Artifact service is not initialized.")
            artifact = await service.load_artifact(
                app_name=invocation_context.app_name,
                user_id=invocation_context.user_id,
                session_id=invocation_context.session.id,
                filename=filename,
            )
            if artifact is None:
                if optional:
                    return ""
                raise KeyError(f"Artifact {filename} not found.")
            return artifact.text or ""

        if not _is_valid_state_name(var_name):
            return match.group()
        if var_name in state:
            return str(state[var_name])
        if optional:
            logger.debug("Optional context variable %s not found, replacing with empty", var_name)
            return ""
        raise KeyError(f"Context variable not found: `{var_name}`.")

    result = []
    last_end = 0
    for match in _PLACEHOLDER_PATTERN.finditer(template):
        result.append(template[last_end : match.start()])
        result.append(await _replace(match))
        last_end = match.end()
    result.append(template[last_end:])
    return "".join(result)


class InstructionsRequestProcessor:
    """Appends the root's global instruction, then the agent's own instruction."""

    async def run_async(
        self, ctx: InvocationContext, llm_request: LlmRequest
    ) -> RequestProcessingResult:
        from turnflow.agents.llm_agent import LlmAgent

        agent = ctx.agent
        if not isinstance(agent, LlmAgent):
            raise ConfigurationError(
                f"Instructions can only be resolved for an LlmAgent, got {type(agent).__name__}",
                details={"agent_name": agent.name},
            )
        root_agent = agent.root_agent
        readonly_context = ReadonlyContext(ctx)

        if isinstance(root_agent, LlmAgent) and root_agent.global_instruction:
            text, bypass = await root_agent.canonical_global_instruction(readonly_context)
            await self._append(llm_request, text, bypass, readonly_context)

        if agent.instruction:
            text, bypass = await agent.canonical_instruction(readonly_context)
            await self._append(llm_request, text, bypass, readonly_context)

        return RequestProcessingResult(updated_request=llm_request)

    @staticmethod
    async def _append(
        llm_request: LlmRequest, text: str, bypass: bool, readonly_context: ReadonlyContext
    ) -> None:
        if not text:
            return
        if not bypass:
            text = await inject_session_state(text, readonly_context)
        llm_request.append_instructions([text])


__all__ = ["InstructionsRequestProcessor", "inject_session_state"]

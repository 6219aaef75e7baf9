"""LLM-backed agent: the instruction-capable kind of agent."""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from contextlib import aclosing
from typing import Any, Literal, Union

from turnflow.agents.base_agent import AgentCallback, BaseAgent
from turnflow.agents.callback_context import ReadonlyContext
from turnflow.agents.invocation_context import InvocationContext
from turnflow.errors import ConfigurationError
from turnflow.events import Event
from turnflow.flows.llm_flow import LlmFlow
from turnflow.flows.processors import RequestProcessor, ResponseProcessor
from turnflow.models.base_llm import BaseLlm
from turnflow.models.lite_llm import LiteLlm
from turnflow.models.llm_request import GenerateContentConfig
from turnflow.models.llm_response import LlmResponse
from turnflow.tools.base_tool import BaseTool
from turnflow.tools.function_tool import FunctionTool

logger = logging.getLogger(__name__)

InstructionProvider = Callable[[ReadonlyContext], Union[str, Awaitable[str]]]
ToolUnion = Union[BaseTool, Callable[..., Any]]

BeforeModelCallback = Callable[..., Union[Awaitable[LlmResponse | None], LlmResponse | None]]
AfterModelCallback = Callable[..., Union[Awaitable[LlmResponse | None], LlmResponse | None]]
OnModelErrorCallback = Callable[..., Union[Awaitable[LlmResponse | None], LlmResponse | None]]
BeforeToolCallback = Callable[..., Union[Awaitable[dict | None], dict | None]]
AfterToolCallback = Callable[..., Union[Awaitable[dict | None], dict | None]]
OnToolErrorCallback = Callable[..., Union[Awaitable[dict | None], dict | None]]


def _as_list(callback: Any) -> list[Any]:
    if callback is None:
        return []
    if isinstance(callback, list):
        return callback
    return [callback]


class LlmAgent(BaseAgent):
    """Agent whose decisions are delegated to a reasoning backend.

    Args:
        model: A BaseLlm, or a LiteLLM model string; empty inherits the
            nearest LlmAgent ancestor's model
        instruction: Static text (state placeholders are injected) or a
            provider called with a ReadonlyContext (used verbatim)
        global_instruction: Instruction for the whole tree; only the root's is used
        tools: Tools or plain callables (wrapped in FunctionTool)
        generate_content_config: Generation parameters copied into every request
        disallow_transfer_to_parent: Forbid handing the turn back to the parent
        disallow_transfer_to_peers: Forbid handing the turn to sibling agents
        include_contents: ``"default"`` sends the branch history, ``"none"``
            only the current turn
        output_key: State key receiving the agent's final response text
        request_processors: Extra request processors, run after the built-in ones
        response_processors: Response processors, run on every model response

    Model callbacks are called with keyword arguments ``callback_context`` and
    ``llm_request``/``llm_response``/``error``; tool callbacks with ``tool``,
    ``args``, ``tool_context`` and ``tool_response``/``error``. The first
    callback returning a value wins.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: list[BaseAgent] | None = None,
        model: str | BaseLlm = "",
        instruction: str | InstructionProvider = "",
        global_instruction: str | InstructionProvider = "",
        tools: Sequence[ToolUnion] | None = None,
        generate_content_config: GenerateContentConfig | None = None,
        disallow_transfer_to_parent: bool = False,
        disallow_transfer_to_peers: bool = False,
        include_contents: Literal["default", "none"] = "default",
        output_key: str | None = None,
        before_agent_callback: AgentCallback | None = None,
        after_agent_callback: AgentCallback | None = None,
        before_model_callback: BeforeModelCallback | list[BeforeModelCallback] | None = None,
        after_model_callback: AfterModelCallback | list[AfterModelCallback] | None = None,
        on_model_error_callback: OnModelErrorCallback | list[OnModelErrorCallback] | None = None,
        before_tool_callback: BeforeToolCallback | list[BeforeToolCallback] | None = None,
        after_tool_callback: AfterToolCallback | list[AfterToolCallback] | None = None,
        on_tool_error_callback: OnToolErrorCallback | list[OnToolErrorCallback] | None = None,
        request_processors: Sequence[RequestProcessor] | None = None,
        response_processors: Sequence[ResponseProcessor] | None = None,
    ) -> None:
        super().__init__(
            name=name,
            description=description,
            sub_agents=sub_agents,
            before_agent_callback=before_agent_callback,
            after_agent_callback=after_agent_callback,
        )
        if include_contents not in ("default", "none"):
            raise ConfigurationError(
                f"include_contents must be 'default' or 'none', got {include_contents!r}",
                details={"agent_name": name},
            )
        self.model = model
        self.instruction = instruction
        self.global_instruction = global_instruction
        self.tools: list[ToolUnion] = list(tools or [])
        self.generate_content_config = generate_content_config
        self.disallow_transfer_to_parent = disallow_transfer_to_parent
        self.disallow_transfer_to_peers = disallow_transfer_to_peers
        self.include_contents = include_contents
        self.output_key = output_key
        self.before_model_callback = before_model_callback
        self.after_model_callback = after_model_callback
        self.on_model_error_callback = on_model_error_callback
        self.before_tool_callback = before_tool_callback
        self.after_tool_callback = after_tool_callback
        self.on_tool_error_callback = on_tool_error_callback
        self._llm_flow = LlmFlow(
            extra_request_processors=request_processors,
            response_processors=response_processors,
        )
        self._resolved_model: BaseLlm | None = None

    @property
    def canonical_model(self) -> BaseLlm:
        """The backend this agent calls, resolving strings and inheritance."""
        if isinstance(self.model, BaseLlm):
            return self.model
        if self.model:
            if self._resolved_model is None:
                self._resolved_model = LiteLlm(self.model)
            return self._resolved_model
        ancestor = self.parent_agent
        while ancestor is not None:
            if isinstance(ancestor, LlmAgent) and ancestor.model:
                return ancestor.canonical_model
            ancestor = ancestor.parent_agent
        raise ConfigurationError(
            f"No model found for {self.name}.", details={"agent_name": self.name}
        )

    async def canonical_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        """Resolve the instruction.

        Returns:
            ``(text, bypass_state_injection)``; provider output bypasses injection
        """
        return await self._resolve_instruction(self.instruction, ctx)

    async def canonical_global_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        return await self._resolve_instruction(self.global_instruction, ctx)

    @staticmethod
    async def _resolve_instruction(
        instruction: str | InstructionProvider, ctx: ReadonlyContext
    ) -> tuple[str, bool]:
        if isinstance(instruction, str):
            return instruction, False
        text = instruction(ctx)
        if inspect.isawaitable(text):
            text = await text
        return text, True

    @property
    def canonical_tools(self) -> list[BaseTool]:
        return [t if isinstance(t, BaseTool) else FunctionTool(t) for t in self.tools]

    @property
    def canonical_before_model_callbacks(self) -> list[BeforeModelCallback]:
        return _as_list(self.before_model_callback)

    @property
    def canonical_after_model_callbacks(self) -> list[AfterModelCallback]:
        return _as_list(self.after_model_callback)

    @property
    def canonical_on_model_error_callbacks(self) -> list[OnModelErrorCallback]:
        return _as_list(self.on_model_error_callback)

    @property
    def canonical_before_tool_callbacks(self) -> list[BeforeToolCallback]:
        return _as_list(self.before_tool_callback)

    @property
    def canonical_after_tool_callbacks(self) -> list[AfterToolCallback]:
        return _as_list(self.after_tool_callback)

    @property
    def canonical_on_tool_error_callbacks(self) -> list[OnToolErrorCallback]:
        return _as_list(self.on_tool_error_callback)

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        async with aclosing(self._llm_flow.run_async(ctx)) as events:
            async for event in events:
                self._maybe_save_output_to_state(event)
                yield event

    async def _run_live_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        async with aclosing(self._llm_flow.run_live(ctx)) as events:
            async for event in events:
                self._maybe_save_output_to_state(event)
                yield event

    def _maybe_save_output_to_state(self, event: Event) -> None:
        if not self.output_key or event.author != self.name or not event.is_final_response():
            return
        if event.content and event.content.parts:
            text = event.text
            if text:
                event.actions.state_delta[self.output_key] = text


__all__ = [
    "AfterModelCallback",
    "AfterToolCallback",
    "BeforeModelCallback",
    "BeforeToolCallback",
    "InstructionProvider",
    "LlmAgent",
    "OnModelErrorCallback",
    "OnToolErrorCallback",
    "ToolUnion",
]

"""Base class of every agent in a tree."""

from __future__ import annotations

import inspect
import logging
import weakref
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from contextlib import aclosing
from typing import Union

from turnflow.agents.callback_context import CallbackContext
from turnflow.agents.invocation_context import InvocationContext
from turnflow.errors import AgentTreeError
from turnflow.events import USER_AUTHOR, Event
from turnflow.telemetry import traced_stream
from turnflow.types import Content

logger = logging.getLogger(__name__)

_SingleAgentCallback = Callable[[CallbackContext], Union[Awaitable[Content | None], Content | None]]
AgentCallback = Union[_SingleAgentCallback, list[_SingleAgentCallback]]


def _canonical_callbacks(callback: AgentCallback | None) -> list[_SingleAgentCallback]:
    if callback is None:
        return []
    if isinstance(callback, list):
        return callback
    return [callback]


class BaseAgent:
    """A node of the agent tree.

    Sub-agents are owned by their parent and fixed at construction; each
    sub-agent keeps a weak back-reference to its parent. Names must be valid
    identifiers, unique within the tree, and may not be ``"user"``.

    Callers must hold a reference to the root of a tree: once a parent is
    garbage collected its children report ``parent_agent is None`` and can be
    attached to a new parent.

    Args:
        name: Agent name, also the author of the events it emits
        description: One-line capability summary, used for transfer decisions
        sub_agents: Child agents; each may belong to only one parent
        before_agent_callback: Called before the agent runs; returning content skips it
        after_agent_callback: Called after the agent runs; returned content is emitted

    Raises:
        AgentTreeError: On invalid or duplicate names, or a re-parented sub-agent
    """

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: list[BaseAgent] | None = None,
        before_agent_callback: AgentCallback | None = None,
        after_agent_callback: AgentCallback | None = None,
    ) -> None:
        if not name.isidentifier():
            raise AgentTreeError(
                f"Found invalid agent name: `{name}`. Agent name must be a valid identifier.",
                details={"agent_name": name},
            )
        if name == USER_AUTHOR:
            raise AgentTreeError(
                "Agent name cannot be `user`. `user` is reserved for end-user's input.",
                details={"agent_name": name},
            )
        self.name = name
        self.description = description
        self.before_agent_callback = before_agent_callback
        self.after_agent_callback = after_agent_callback
        self._parent_ref: weakref.ReferenceType[BaseAgent] | None = None

        sub_agents = list(sub_agents or [])
        for sub_agent in sub_agents:
            if sub_agent.parent_agent is not None:
                raise AgentTreeError(
                    f"Agent `{sub_agent.name}` already has a parent agent, current parent: "
                    f"`{sub_agent.parent_agent.name}`, trying to add: `{name}`",
                    details={"agent_name": sub_agent.name},
                )
        self._sub_agents: tuple[BaseAgent, ...] = tuple(sub_agents)
        self._validate_unique_names()
        for sub_agent in self._sub_agents:
            sub_agent._parent_ref = weakref.ref(self)

    def _validate_unique_names(self) -> None:
        seen: set[str] = set()
        for agent in self._iter_tree():
            if agent.name in seen:
                raise AgentTreeError(
                    f"Agent name `{agent.name}` is used more than once in the agent tree.",
                    details={"agent_name": agent.name},
                )
            seen.add(agent.name)

    def _iter_tree(self) -> Iterator[BaseAgent]:
        yield self
        for sub_agent in self._sub_agents:
            yield from sub_agent._iter_tree()

    @property
    def sub_agents(self) -> tuple[BaseAgent, ...]:
        return self._sub_agents

    @property
    def parent_agent(self) -> BaseAgent | None:
        """The owning agent, or None for a root or when the parent was collected."""
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root_agent(self) -> BaseAgent:
        agent = self
        while agent.parent_agent is not None:
            agent = agent.parent_agent
        return agent

    def find_agent(self, name: str) -> BaseAgent | None:
        """Find this agent or a descendant by name."""
        if self.name == name:
            return self
        return self.find_sub_agent(name)

    def find_sub_agent(self, name: str) -> BaseAgent | None:
        """Find a descendant (depth-first) by name."""
        for sub_agent in self._sub_agents:
            if result := sub_agent.find_agent(name):
                return result
        return None

    @property
    def canonical_before_agent_callbacks(self) -> list[_SingleAgentCallback]:
        return _canonical_callbacks(self.before_agent_callback)

    @property
    def canonical_after_agent_callbacks(self) -> list[_SingleAgentCallback]:
        return _canonical_callbacks(self.after_agent_callback)

    def run_async(self, parent_context: InvocationContext) -> AsyncGenerator[Event, None]:
        """Run the agent for one turn.

        Returns:
            A lazy event stream, traced as ``agent_run [<name>]``
        """
        return traced_stream(
            f"agent_run [{self.name}]",
            self._run_with_callbacks(parent_context, live=False),
            {"agent.name": self.name},
        )

    def run_live(self, parent_context: InvocationContext) -> AsyncGenerator[Event, None]:
        """Run the agent over the live request queue of ``parent_context``."""
        return traced_stream(
            f"agent_run [{self.name}]",
            self._run_with_callbacks(parent_context, live=True),
            {"agent.name": self.name, "agent.live": True},
        )

    async def _run_with_callbacks(
        self, parent_context: InvocationContext, *, live: bool
    ) -> AsyncGenerator[Event, None]:
        ctx = self._create_invocation_context(parent_context)

        if event := await self._handle_before_agent_callback(ctx):
            yield event
        if ctx.end_invocation:
            return

        impl = self._run_live_impl(ctx) if live else self._run_async_impl(ctx)
        async with aclosing(impl) as events:
            async for event in events:
                yield event

        if ctx.end_invocation:
            return
        if event := await self._handle_after_agent_callback(ctx):
            yield event

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Agent body for ``run_async``; subclasses override."""
        raise NotImplementedError(f"_run_async_impl for {type(self)} is not implemented.")
        yield  # pragma: no cover

    async def _run_live_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Agent body for ``run_live``; subclasses override."""
        raise NotImplementedError(f"_run_live_impl for {type(self)} is not implemented.")
        yield  # pragma: no cover

    def _create_invocation_context(self, parent_context: InvocationContext) -> InvocationContext:
        return parent_context.model_copy(agent=self)

    async def _handle_before_agent_callback(self, ctx: InvocationContext) -> Event | None:
        callback_context = CallbackContext(ctx)

        content = await ctx.plugin_manager.run_before_agent_callback(
            agent=self, callback_context=callback_context
        )
        if content is None:
            for callback in self.canonical_before_agent_callbacks:
                content = callback(callback_context=callback_context)
                if inspect.isawaitable(content):
                    content = await content
                if content is not None:
                    break

        if content is not None:
            logger.debug("before_agent callback bypassed agent %s", self.name)
            ctx.end_invocation = True
            return Event(
                invocation_id=ctx.invocation_id,
                author=self.name,
                branch=ctx.branch,
                content=content,
                actions=callback_context.actions,
            )
        if callback_context.state.has_delta():
            return Event(
                invocation_id=ctx.invocation_id,
                author=self.name,
                branch=ctx.branch,
                actions=callback_context.actions,
            )
        return None

    async def _handle_after_agent_callback(self, ctx: InvocationContext) -> Event | None:
        callback_context = CallbackContext(ctx)

        content = await ctx.plugin_manager.run_after_agent_callback(
            agent=self, callback_context=callback_context
        )
        if content is None:
            for callback in self.canonical_after_agent_callbacks:
                content = callback(callback_context=callback_context)
                if inspect.isawaitable(content):
                    content = await content
                if content is not None:
                    break

        if content is not None or callback_context.state.has_delta():
            return Event(
                invocation_id=ctx.invocation_id,
                author=self.name,
                branch=ctx.branch,
                content=content,
                actions=callback_context.actions,
            )
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


__all__ = ["AgentCallback", "BaseAgent"]

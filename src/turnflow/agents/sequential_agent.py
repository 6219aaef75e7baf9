"""Workflow agent running its sub-agents one after another."""

from collections.abc import AsyncGenerator
from contextlib import aclosing

from turnflow.agents.base_agent import BaseAgent
from turnflow.agents.invocation_context import InvocationContext
from turnflow.events import Event


class SequentialAgent(BaseAgent):
    """Runs each sub-agent in order, forwarding their events."""

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        for sub_agent in self.sub_agents:
            async with aclosing(sub_agent.run_async(ctx)) as events:
                async for event in events:
                    yield event


__all__ = ["SequentialAgent"]

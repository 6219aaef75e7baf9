"""Workflow agent repeating its sub-agents."""

from collections.abc import AsyncGenerator
from contextlib import aclosing

from turnflow.agents.base_agent import AgentCallback, BaseAgent
from turnflow.agents.invocation_context import InvocationContext
from turnflow.events import Event


class LoopAgent(BaseAgent):
    """Runs its sub-agents in order, repeatedly.

    Stops when a sub-agent emits an event with ``actions.escalate`` set
    (see the ``exit_loop`` tool) or after ``max_iterations`` rounds.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: list[BaseAgent] | None = None,
        max_iterations: int | None = None,
        before_agent_callback: AgentCallback | None = None,
        after_agent_callback: AgentCallback | None = None,
    ) -> None:
        super().__init__(
            name=name,
            description=description,
            sub_agents=sub_agents,
            before_agent_callback=before_agent_callback,
            after_agent_callback=after_agent_callback,
        )
        self.max_iterations = max_iterations

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        if not self.sub_agents:
            return
        times_looped = 0
        while not self.max_iterations or times_looped < self.max_iterations:
            for sub_agent in self.sub_agents:
                async with aclosing(sub_agent.run_async(ctx)) as events:
                    async for event in events:
                        yield event
                        if event.actions.escalate:
                            return
            times_looped += 1


__all__ = ["LoopAgent"]

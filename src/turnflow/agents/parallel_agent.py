"""Workflow agent running its sub-agents concurrently on isolated branches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass

from turnflow.agents.base_agent import BaseAgent
from turnflow.agents.invocation_context import InvocationContext
from turnflow.events import Event

logger = logging.getLogger(__name__)

_BRANCH_DONE = object()


@dataclass
class _BranchFailure:
    """Error raised inside one branch, forwarded to the consumer."""

    error: Exception


def _create_branch_ctx_for_sub_agent(
    agent: BaseAgent, sub_agent: BaseAgent, ctx: InvocationContext
) -> InvocationContext:
    branch_suffix = f"{agent.name}.{sub_agent.name}"
    branch = f"{ctx.branch}.{sub_agent.name}" if ctx.branch else branch_suffix
    return ctx.model_copy(branch=branch)


async def _merge_agent_runs(
    agent_runs: list[AsyncGenerator[Event, None]],
) -> AsyncGenerator[Event, None]:
    """Merge branch streams into one.

    Each branch waits until the consumer has processed its event before it
    continues, so a branch always observes its own earlier events in the
    session. Ordering across branches is unspecified. The first branch error
    is raised to the consumer; all remaining branches are cancelled.
    """
    queue: asyncio.Queue[object] = asyncio.Queue()

    async def _drain(run: AsyncGenerator[Event, None]) -> None:
        try:
            async with aclosing(run) as events:
                async for event in events:
                    resume = asyncio.Event()
                    await queue.put((event, resume))
                    await resume.wait()
        except Exception as e:
            await queue.put(_BranchFailure(e))
        finally:
            queue.put_nowait(_BRANCH_DONE)

    tasks = [asyncio.create_task(_drain(run)) for run in agent_runs]
    remaining = len(tasks)
    try:
        while remaining:
            item = await queue.get()
            if item is _BRANCH_DONE:
                remaining -= 1
                continue
            if isinstance(item, _BranchFailure):
                raise item.error
            event, resume = item
            yield event
            resume.set()
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Branch errors were already forwarded; only cancellations remain here
        await asyncio.gather(*tasks, return_exceptions=True)


class ParallelAgent(BaseAgent):
    """Runs all sub-agents concurrently.

    Each sub-agent runs on its own branch (``<parent branch>.<sub-agent>``,
    or ``<agent>.<sub-agent>`` at the top), so it only sees its own history.
    """

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        agent_runs = [
            sub_agent.run_async(_create_branch_ctx_for_sub_agent(self, sub_agent, ctx))
            for sub_agent in self.sub_agents
        ]
        async with aclosing(_merge_agent_runs(agent_runs)) as events:
            async for event in events:
                yield event


__all__ = ["ParallelAgent"]

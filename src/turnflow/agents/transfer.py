"""Agent selection: which agent of the tree handles the next turn."""

import logging

from turnflow.agents.base_agent import BaseAgent
from turnflow.agents.llm_agent import LlmAgent
from turnflow.events import USER_AUTHOR
from turnflow.sessions.session import Session

logger = logging.getLogger(__name__)


def is_transferable_across_agent_tree(agent_to_run: BaseAgent) -> bool:
    """Whether the conversation may stay with ``agent_to_run``.

    Every node from the agent up to and including the root must be an
    LlmAgent that allows transfer to its parent.
    """
    agent: BaseAgent | None = agent_to_run
    while agent is not None:
        if not isinstance(agent, LlmAgent):
            return False
        if agent.disallow_transfer_to_parent:
            return False
        agent = agent.parent_agent
    return True


def find_agent_to_run(session: Session, root_agent: BaseAgent) -> BaseAgent:
    """Pick the agent for the next turn from the session history.

    Events are scanned from newest to oldest, skipping user events. The root
    is selected when it authored the event; a sub-agent author is selected
    when it is transferable across the tree, otherwise scanning continues.
    Falls back to the root.
    """
    for event in reversed(session.events):
        if event.author == USER_AUTHOR:
            continue
        if event.author == root_agent.name:
            return root_agent

        agent = root_agent.find_sub_agent(event.author)
        if agent is None:
            logger.warning(
                "Event from an unknown agent: %s, event id: %s", event.author, event.id
            )
            continue
        if is_transferable_across_agent_tree(agent):
            return agent

    return root_agent


__all__ = ["find_agent_to_run", "is_transferable_across_agent_tree"]

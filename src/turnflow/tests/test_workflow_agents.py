"""Tests for SequentialAgent, LoopAgent and ParallelAgent."""

import pytest

from turnflow.agents import LlmAgent, LoopAgent, ParallelAgent, SequentialAgent
from turnflow.runners import InMemoryRunner
from turnflow.tests.testing_utils import (
    USER_ID,
    MockModel,
    ScriptedAgent,
    collect,
    create_invocation_context,
)
from turnflow.types import Content


async def _run(agent):
    ctx = await create_invocation_context(agent, user_content=Content.from_text("go"))
    return await collect(agent.run_async(ctx))


@pytest.mark.unit
class TestSequentialAgent:
    """Tests for SequentialAgent."""

    @pytest.mark.asyncio
    async def test_runs_in_order(self) -> None:
        """Test sub-agents run one after another."""
        agent = SequentialAgent(
            name="seq",
            sub_agents=[
                ScriptedAgent(name="first", texts=["1a", "1b"]),
                ScriptedAgent(name="second", texts=["2"]),
            ],
        )

        events = await _run(agent)

        assert [(e.author, e.text) for e in events] == [
            ("first", "1a"),
            ("first", "1b"),
            ("second", "2"),
        ]

    @pytest.mark.asyncio
    async def test_later_agent_sees_earlier_output(self) -> None:
        """Test state written by one step is visible to the next through the runner."""
        writer = LlmAgent(name="writer", model=MockModel(["draft text"]), output_key="draft")
        reviewer_model = MockModel(["looks good"])
        reviewer = LlmAgent(name="reviewer", model=reviewer_model, instruction="Review: {draft}")
        runner = InMemoryRunner(SequentialAgent(name="pipeline", sub_agents=[writer, reviewer]))
        session = await runner.session_service.create_session(
            app_name=runner.app_name, user_id=USER_ID
        )

        events = await collect(
            runner.run_async(
                user_id=USER_ID, session_id=session.id, new_message=Content.from_text("write")
            )
        )

        assert [e.text for e in events] == ["draft text", "looks good"]
        assert reviewer_model.requests[0].config.system_instruction.endswith("Review: draft text")


@pytest.mark.unit
class TestLoopAgent:
    """Tests for LoopAgent."""

    @pytest.mark.asyncio
    async def test_max_iterations(self) -> None:
        """Test the loop stops after max_iterations rounds."""
        step = ScriptedAgent(name="step", texts=["tick"])
        agent = LoopAgent(name="loop", sub_agents=[step], max_iterations=3)

        events = await _run(agent)

        assert [e.text for e in events] == ["tick"] * 3
        assert step.call_count == 3

    @pytest.mark.asyncio
    async def test_escalate_stops_loop(self) -> None:
        """Test an escalating event ends the loop immediately."""
        first = ScriptedAgent(name="first", texts=["work"], escalate_after=2)
        second = ScriptedAgent(name="second", texts=["more"])
        agent = LoopAgent(name="loop", sub_agents=[first, second])

        events = await _run(agent)

        assert [(e.author, e.text) for e in events] == [
            ("first", "work"),
            ("second", "more"),
            ("first", "work"),
        ]
        assert second.call_count == 1

    @pytest.mark.asyncio
    async def test_no_sub_agents(self) -> None:
        """Test an empty loop yields nothing."""
        assert await _run(LoopAgent(name="loop")) == []


@pytest.mark.unit
class TestParallelAgent:
    """Tests for ParallelAgent."""

    @pytest.mark.asyncio
    async def test_branches_and_all_events(self) -> None:
        """Test every sub-agent runs on its own branch."""
        agent = ParallelAgent(
            name="par",
            sub_agents=[
                ScriptedAgent(name="left", texts=["l1", "l2"]),
                ScriptedAgent(name="right", texts=["r1"]),
            ],
        )

        events = await _run(agent)

        by_author: dict[str, list[str]] = {}
        for event in events:
            by_author.setdefault(event.author, []).append(event.text)
        assert by_author == {"left": ["l1", "l2"], "right": ["r1"]}
        assert {e.author: e.branch for e in events} == {"left": "par.left", "right": "par.right"}

    @pytest.mark.asyncio
    async def test_nested_branch(self) -> None:
        """Test a nested parallel agent extends the parent branch."""
        inner = ParallelAgent(name="inner", sub_agents=[ScriptedAgent(name="leaf", texts=["x"])])
        outer = ParallelAgent(name="outer", sub_agents=[inner])

        events = await _run(outer)

        assert events[0].branch == "outer.inner.leaf"

    @pytest.mark.asyncio
    async def test_branch_error_cancels_others(self) -> None:
        """Test the first branch error reaches the caller."""
        agent = ParallelAgent(
            name="par",
            sub_agents=[
                ScriptedAgent(name="bad", error=RuntimeError("branch failed")),
                ScriptedAgent(name="good", texts=[f"g{i}" for i in range(20)]),
            ],
        )

        with pytest.raises(RuntimeError, match="branch failed"):
            await _run(agent)

    @pytest.mark.asyncio
    async def test_branches_isolated_in_history(self) -> None:
        """Test an LLM sub-agent does not see its sibling's events."""
        left_model = MockModel(["left answer"])
        right_model = MockModel(["right answer"])
        runner = InMemoryRunner(
            ParallelAgent(
                name="par",
                sub_agents=[
                    LlmAgent(name="left", model=left_model),
                    LlmAgent(name="right", model=right_model),
                ],
            )
        )
        session = await runner.session_service.create_session(
            app_name=runner.app_name, user_id=USER_ID
        )

        await collect(
            runner.run_async(
                user_id=USER_ID, session_id=session.id, new_message=Content.from_text("q")
            )
        )

        for model in (left_model, right_model):
            assert [c.text for c in model.requests[0].contents] == ["q"]

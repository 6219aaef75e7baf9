"""Tests for live (duplex) invocations."""

import asyncio
import logging
from collections.abc import AsyncGenerator

import pytest

from turnflow.agents import LiveRequestQueue, LlmAgent, RunConfig, SequentialAgent
from turnflow.events import Event
from turnflow.models import LlmResponse
from turnflow.runners import InMemoryRunner
from turnflow.tests.testing_utils import (
    USER_ID,
    MockLlmConnection,
    MockModel,
    function_call_response,
    text_response,
)
from turnflow.types import Blob, Content


async def _start(runner: InMemoryRunner, queue: LiveRequestQueue, **kwargs):
    session = await runner.session_service.create_session(
        app_name=runner.app_name, user_id=USER_ID
    )
    stream = runner.run_live(
        live_request_queue=queue, user_id=USER_ID, session_id=session.id, **kwargs
    )
    return session, stream


async def _collect_until(stream, count: int, timeout: float = 2.0) -> list:
    events = []

    async def _read() -> None:
        async for event in stream:
            events.append(event)
            if len(events) >= count:
                return

    await asyncio.wait_for(_read(), timeout)
    return events


@pytest.mark.unit
class TestRunLive:
    """Tests for Runner.run_live."""

    @pytest.mark.asyncio
    async def test_forwards_requests_and_closes(self) -> None:
        """Test content and blobs reach the connection and close ends the stream."""
        connection = MockLlmConnection([text_response("hi there", turn_complete=True)])
        agent = LlmAgent(name="voice", model=MockModel(live_connection=connection))
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        session, stream = await _start(runner, queue)

        queue.send_content(Content.from_text("hello"))
        queue.send_realtime(Blob(mime_type="audio/pcm", data=b"\x00\x01"))
        queue.close()
        events = await asyncio.wait_for(_collect_all(stream), 2.0)

        assert [e.text for e in events] == ["hi there"]
        assert [c.text for c in connection.sent_contents] == ["hello"]
        assert [b.data for b in connection.sent_blobs] == [b"\x00\x01"]
        assert connection.closed
        stored = await runner.session_service.get_session(
            app_name=runner.app_name, user_id=USER_ID, session_id=session.id
        )
        assert [e.text for e in stored.events] == ["hi there"]

    @pytest.mark.asyncio
    async def test_history_sent_on_connect(self) -> None:
        """Test prior conversation is sent to the connection first."""
        connection = MockLlmConnection()
        agent = LlmAgent(name="voice", model=MockModel(live_connection=connection))
        runner = InMemoryRunner(agent)
        session = await runner.session_service.create_session(
            app_name=runner.app_name, user_id=USER_ID
        )
        await runner.session_service.append_event(
            session, Event(author="user", content=Content.from_text("earlier"))
        )
        queue = LiveRequestQueue()
        queue.close()

        await asyncio.wait_for(
            _collect_all(runner.run_live(live_request_queue=queue, session=session)), 2.0
        )

        assert [c.text for c in connection.history] == ["earlier"]

    @pytest.mark.asyncio
    async def test_function_response_sent_back(self) -> None:
        """Test tool results are pushed back to the model through the queue."""

        def lookup(city: str) -> dict:
            return {"weather": f"sunny in {city}"}

        connection = MockLlmConnection([function_call_response(("lookup", {"city": "Oslo"}))])
        agent = LlmAgent(
            name="voice", model=MockModel(live_connection=connection), tools=[lookup]
        )
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        events = await _collect_until(stream, 2)
        for _ in range(20):
            if connection.sent_contents:
                break
            await asyncio.sleep(0.01)
        queue.close()
        await asyncio.wait_for(_collect_all(stream), 2.0)

        assert events[1].get_function_responses()[0].response == {"weather": "sunny in Oslo"}
        sent = connection.sent_contents[0].parts[0].function_response
        assert sent.name == "lookup"

    @pytest.mark.asyncio
    async def test_streaming_tool_results_sent_as_content(self) -> None:
        """Test a streaming tool runs in the background and reports each result."""

        async def monitor(symbol: str) -> AsyncGenerator[str, None]:
            for price in ("100", "101"):
                yield f"{symbol}={price}"

        connection = MockLlmConnection([function_call_response(("monitor", {"symbol": "X"}))])
        agent = LlmAgent(
            name="voice", model=MockModel(live_connection=connection), tools=[monitor]
        )
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        events = await _collect_until(stream, 2)
        for _ in range(50):
            texts = [c.text for c in connection.sent_contents]
            if "Function monitor returned: X=101" in texts:
                break
            await asyncio.sleep(0.01)
        queue.close()
        await asyncio.wait_for(_collect_all(stream), 2.0)

        pending = events[1].get_function_responses()[0].response
        assert pending == {
            "status": "The function is running asynchronously and the results are pending."
        }
        texts = [c.text for c in connection.sent_contents]
        assert "Function monitor returned: X=100" in texts
        assert "Function monitor returned: X=101" in texts

    @pytest.mark.asyncio
    async def test_streaming_tool_failure_reported(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a crashing streaming tool is logged and reported to the model."""

        async def feed() -> AsyncGenerator[str, None]:
            yield "tick"
            raise RuntimeError("feed crashed")

        connection = MockLlmConnection([function_call_response(("feed", {}))])
        agent = LlmAgent(name="voice", model=MockModel(live_connection=connection), tools=[feed])
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        with caplog.at_level(logging.ERROR, logger="turnflow.flows.functions"):
            await _collect_until(stream, 2)
            for _ in range(50):
                texts = [c.text for c in connection.sent_contents]
                if "Function feed failed: feed crashed" in texts:
                    break
                await asyncio.sleep(0.01)
            queue.close()
            await asyncio.wait_for(_collect_all(stream), 2.0)

        texts = [c.text for c in connection.sent_contents]
        assert "Function feed returned: tick" in texts
        assert "Function feed failed: feed crashed" in texts
        failures = [r for r in caplog.records if "Streaming tool feed failed" in r.getMessage()]
        assert len(failures) == 1
        assert failures[0].exc_info is not None

    @pytest.mark.asyncio
    async def test_repeated_streaming_call_keeps_running_task(self) -> None:
        """Test a second call to a running streaming tool does not start another task."""
        starts = []

        async def monitor(symbol: str) -> AsyncGenerator[str, None]:
            starts.append(symbol)
            await asyncio.sleep(60)
            yield symbol

        connection = MockLlmConnection(
            [
                function_call_response(("monitor", {"symbol": "X"})),
                function_call_response(("monitor", {"symbol": "Y"})),
            ]
        )
        agent = LlmAgent(
            name="voice", model=MockModel(live_connection=connection), tools=[monitor]
        )
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        events = await _collect_until(stream, 4)
        await asyncio.sleep(0.05)
        queue.close()
        await asyncio.wait_for(_collect_all(stream), 2.0)

        assert events[3].get_function_responses()[0].response == {
            "status": "Function monitor is already running. Stop it before starting it again."
        }
        assert starts == ["X"]

    @pytest.mark.asyncio
    async def test_aclose_cancels_background_tasks(self) -> None:
        """Test closing the event stream mid-conversation stops sender and tool tasks."""
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def monitor(symbol: str) -> AsyncGenerator[str, None]:
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            yield symbol

        connection = MockLlmConnection([function_call_response(("monitor", {"symbol": "X"}))])
        agent = LlmAgent(
            name="voice", model=MockModel(live_connection=connection), tools=[monitor]
        )
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        await _collect_until(stream, 2)
        await asyncio.wait_for(started.wait(), 2.0)
        await asyncio.wait_for(stream.aclose(), 2.0)

        assert cancelled.is_set()
        assert connection.closed
        lingering = [
            task
            for task in asyncio.all_tasks()
            if task.get_name().startswith(("live_sender", "streaming_tool"))
        ]
        assert lingering == []

    @pytest.mark.asyncio
    async def test_transfer_moves_live_session(self) -> None:
        """Test a transfer continues the live conversation on the target agent."""
        root_connection = MockLlmConnection(
            [function_call_response(("transfer_to_agent", {"agent_name": "expert"}))]
        )
        expert_connection = MockLlmConnection([text_response("expert speaking")])
        expert = LlmAgent(name="expert", model=MockModel(live_connection=expert_connection))
        root = LlmAgent(
            name="root",
            model=MockModel(live_connection=root_connection),
            sub_agents=[expert],
        )
        runner = InMemoryRunner(root)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue, run_config=RunConfig(response_modalities=["TEXT"]))

        events = await _collect_until(stream, 3)
        queue.close()
        await asyncio.wait_for(_collect_all(stream), 2.0)

        assert [e.author for e in events] == ["root", "root", "expert"]
        assert events[2].text == "expert speaking"
        assert root_connection.closed

    @pytest.mark.asyncio
    async def test_multi_agent_defaults_to_audio(self) -> None:
        """Test a tree with sub-agents defaults to audio with transcription."""
        connection = MockLlmConnection()
        model = MockModel(live_connection=connection)
        root = LlmAgent(name="root", model=model, sub_agents=[LlmAgent(name="helper")])
        runner = InMemoryRunner(root)
        queue = LiveRequestQueue()
        queue.close()
        _, stream = await _start(runner, queue)

        await asyncio.wait_for(_collect_all(stream), 2.0)

        live_config = model.requests[0].live_connect_config
        assert live_config.response_modalities == ["AUDIO"]
        assert live_config.output_audio_transcription is True
        assert live_config.input_audio_transcription is True

    @pytest.mark.asyncio
    async def test_workflow_agent_not_supported(self) -> None:
        """Test workflow agents do not implement live mode."""
        runner = InMemoryRunner(SequentialAgent(name="seq"))
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        with pytest.raises(NotImplementedError):
            await _collect_all(stream)

    @pytest.mark.asyncio
    async def test_interrupted_response_forwarded(self) -> None:
        """Test an interruption without content still produces an event."""
        connection = MockLlmConnection([LlmResponse(interrupted=True)])
        agent = LlmAgent(name="voice", model=MockModel(live_connection=connection))
        runner = InMemoryRunner(agent)
        queue = LiveRequestQueue()
        _, stream = await _start(runner, queue)

        events = await _collect_until(stream, 1)
        queue.close()
        await asyncio.wait_for(_collect_all(stream), 2.0)

        assert events[0].interrupted is True


async def _collect_all(stream) -> list:
    return [event async for event in stream]

"""Tests for Runner.run_async."""

import pytest
from opentelemetry.trace import StatusCode

from turnflow.agents import LlmAgent, RunConfig
from turnflow.errors import ConfigurationError, SessionNotFoundError
from turnflow.events import MODEL_AUTHOR, Event
from turnflow.plugins import BasePlugin
from turnflow.runners import InMemoryRunner, Runner
from turnflow.tests.testing_utils import (
    APP_NAME,
    USER_ID,
    EchoAgent,
    MockModel,
    RecordingPlugin,
    collect,
    function_call_response,
    text_response,
)
from turnflow.types import Content, Part


async def _new_session(runner: Runner, **kwargs):
    return await runner.session_service.create_session(
        app_name=runner.app_name, user_id=USER_ID, **kwargs
    )


async def _run(runner: Runner, session_id: str, text: str = "hello", **kwargs) -> list[Event]:
    return await collect(
        runner.run_async(
            user_id=USER_ID,
            session_id=session_id,
            new_message=Content.from_text(text),
            **kwargs,
        )
    )


async def _stored_events(runner: Runner, session_id: str) -> list[Event]:
    session = await runner.session_service.get_session(
        app_name=runner.app_name, user_id=USER_ID, session_id=session_id
    )
    return session.events


class _ReplacingPlugin(BasePlugin):
    def __init__(self) -> None:
        super().__init__("replacing")

    async def on_user_message_callback(self, *, invocation_context, user_message):
        return Content.from_text(user_message.text.upper())

    async def on_event_callback(self, *, invocation_context, event):
        return Event(author=event.author, content=Content.from_text("redacted", role="model"))


@pytest.mark.unit
class TestRunnerScenarios:
    """End-to-end behaviour of a single invocation."""

    @pytest.mark.asyncio
    async def test_echo_turn_appends_user_and_agent_events(self) -> None:
        """Test a fresh session stores the user message and the echo, in order."""
        runner = InMemoryRunner(EchoAgent(), app_name=APP_NAME)
        session = await _new_session(runner)

        events = await _run(runner, session.id)

        assert [(e.author, e.text) for e in events] == [("echo_agent", "echo: hello")]
        stored = await _stored_events(runner, session.id)
        assert [(e.author, e.text) for e in stored] == [
            ("user", "hello"),
            ("echo_agent", "echo: hello"),
        ]
        assert stored[0].invocation_id == stored[1].invocation_id

    @pytest.mark.asyncio
    async def test_before_run_answer_skips_agent(self) -> None:
        """Test a before-run answer yields one model-authored event and no agent run."""
        agent = EchoAgent()
        plugin = RecordingPlugin(before_run_callback=Content.from_text("cached", role="model"))
        runner = InMemoryRunner(agent, app_name=APP_NAME, plugins=[plugin])
        session = await _new_session(runner)

        events = await _run(runner, session.id)

        assert len(events) == 1
        assert events[0].author == MODEL_AUTHOR
        assert events[0].text == "cached"
        assert agent.call_count == 0
        assert plugin.calls["after_run_callback"] == 1

    @pytest.mark.asyncio
    async def test_before_agent_falls_through_to_second_plugin(self) -> None:
        """Test the second plugin's before-agent content bypasses the agent."""
        agent = EchoAgent()
        first = RecordingPlugin("first")
        second = RecordingPlugin(
            "second", before_agent_callback=Content.from_text("X", role="model")
        )
        runner = InMemoryRunner(agent, app_name=APP_NAME, plugins=[first, second])
        session = await _new_session(runner)

        events = await _run(runner, session.id)

        assert [(e.author, e.text) for e in events] == [("echo_agent", "X")]
        assert agent.call_count == 0
        assert first.calls["before_agent_callback"] == 1
        assert second.calls["before_agent_callback"] == 1

    @pytest.mark.asyncio
    async def test_tool_error_recovered_by_plugin(self) -> None:
        """Test an on-tool-error answer becomes the tool response and the turn continues."""

        def flaky(city: str) -> dict:
            raise RuntimeError("service down")

        model = MockModel([function_call_response(("flaky", {"city": "Paris"})), "Sunny anyway."])
        agent = LlmAgent(name="assistant", model=model, tools=[flaky])
        plugin = RecordingPlugin(on_tool_error_callback={"result": "recovered"})
        runner = InMemoryRunner(agent, app_name=APP_NAME, plugins=[plugin])
        session = await _new_session(runner)

        events = await _run(runner, session.id)

        assert len(events) == 3
        assert events[0].get_function_calls()[0].name == "flaky"
        response = events[1].get_function_responses()[0]
        assert response.name == "flaky"
        assert response.response == {"result": "recovered"}
        assert events[2].text == "Sunny anyway."
        # The recovered response is what the model saw next
        last_request = model.requests[-1]
        assert last_request.contents[-1].parts[0].function_response.response == {
            "result": "recovered"
        }


@pytest.mark.unit
class TestRunnerBehaviour:
    """Tests for Runner message handling and plugin hooks."""

    @pytest.mark.asyncio
    async def test_session_not_found(self) -> None:
        """Test an unknown session id fails from the stream."""
        runner = InMemoryRunner(EchoAgent(), app_name=APP_NAME)
        with pytest.raises(SessionNotFoundError):
            await _run(runner, "missing")

    @pytest.mark.asyncio
    async def test_stream_is_lazy(self) -> None:
        """Test nothing happens until the stream is iterated."""
        agent = EchoAgent()
        runner = InMemoryRunner(agent, app_name=APP_NAME)
        session = await _new_session(runner)

        stream = runner.run_async(
            user_id=USER_ID, session_id=session.id, new_message=Content.from_text("hi")
        )
        assert await _stored_events(runner, session.id) == []
        await stream.aclose()
        assert agent.call_count == 0

    @pytest.mark.asyncio
    async def test_user_message_replaced_by_plugin(self) -> None:
        """Test on_user_message can rewrite the message before it is stored."""
        runner = InMemoryRunner(EchoAgent(), app_name=APP_NAME, plugins=[_ReplacingPlugin()])
        session = await _new_session(runner)

        events = await _run(runner, session.id)

        stored = await _stored_events(runner, session.id)
        assert stored[0].text == "HELLO"
        # Persisted event keeps the original, the caller sees the substitute
        assert stored[1].text == "echo: HELLO"
        assert events[0].text == "redacted"

    @pytest.mark.asyncio
    async def test_empty_message_not_appended(self) -> None:
        """Test a message without parts is not stored, but the agent still runs."""
        agent = EchoAgent()
        runner = InMemoryRunner(agent, app_name=APP_NAME)
        session = await _new_session(runner)

        await collect(
            runner.run_async(
                user_id=USER_ID, session_id=session.id, new_message=Content(role="user")
            )
        )

        stored = await _stored_events(runner, session.id)
        assert [e.author for e in stored] == ["echo_agent"]
        assert agent.call_count == 1

    @pytest.mark.asyncio
    async def test_state_delta_applied_with_message(self) -> None:
        """Test the caller's state_delta travels on the user event."""
        runner = InMemoryRunner(EchoAgent(), app_name=APP_NAME)
        session = await _new_session(runner)

        await _run(runner, session.id, state_delta={"mood": "happy"})

        loaded = await runner.session_service.get_session(
            app_name=APP_NAME, user_id=USER_ID, session_id=session.id
        )
        assert loaded.state["mood"] == "happy"
        assert loaded.events[0].actions.state_delta == {"mood": "happy"}

    @pytest.mark.asyncio
    async def test_blobs_saved_as_artifacts(self) -> None:
        """Test inline user blobs are replaced by an artifact reference."""
        runner = InMemoryRunner(EchoAgent(), app_name=APP_NAME)
        session = await _new_session(runner)
        message = Content(
            role="user",
            parts=[Part(text="see file"), Part.from_bytes(b"\x89PNG", "image/png")],
        )

        await collect(
            runner.run_async(
                user_id=USER_ID,
                session_id=session.id,
                new_message=message,
                run_config=RunConfig(save_input_blobs_as_artifacts=True),
            )
        )

        stored = await _stored_events(runner, session.id)
        user_parts = stored[0].content.parts
        assert user_parts[0].text == "see file"
        assert user_parts[1].inline_data is None
        filename = f"artifact_{stored[0].invocation_id}_1"
        assert user_parts[1].text == (
            f"Uploaded file: {filename}. It has been saved to the artifacts"
        )
        artifact = await runner.artifact_service.load_artifact(
            app_name=APP_NAME, user_id=USER_ID, session_id=session.id, filename=filename
        )
        assert artifact.inline_data.data == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_blob_offload_without_artifact_service(self, session_service) -> None:
        """Test blob off-loading without an artifact store is a configuration error."""
        runner = Runner(app_name=APP_NAME, agent=EchoAgent(), session_service=session_service)
        session = await _new_session(runner)
        message = Content(role="user", parts=[Part.from_bytes(b"data", "text/plain")])

        with pytest.raises(ConfigurationError):
            await collect(
                runner.run_async(
                    user_id=USER_ID,
                    session_id=session.id,
                    new_message=message,
                    run_config=RunConfig(save_input_blobs_as_artifacts=True),
                )
            )

    @pytest.mark.asyncio
    async def test_after_run_called_on_error(self) -> None:
        """Test after_run runs when the agent fails."""
        model = MockModel([RuntimeError("backend down")])
        plugin = RecordingPlugin()
        runner = InMemoryRunner(
            LlmAgent(name="a", model=model), app_name=APP_NAME, plugins=[plugin]
        )
        session = await _new_session(runner)

        with pytest.raises(RuntimeError, match="backend down"):
            await _run(runner, session.id)
        assert plugin.calls["after_run_callback"] == 1

    @pytest.mark.asyncio
    async def test_after_run_called_when_consumer_stops(self) -> None:
        """Test closing the stream early still runs after_run."""
        model = MockModel(["one"])
        plugin = RecordingPlugin()
        runner = InMemoryRunner(
            LlmAgent(name="a", model=model), app_name=APP_NAME, plugins=[plugin]
        )
        session = await _new_session(runner)

        stream = runner.run_async(
            user_id=USER_ID, session_id=session.id, new_message=Content.from_text("hi")
        )
        first = await stream.__anext__()
        await stream.aclose()

        assert first.text == "one"
        assert plugin.calls["after_run_callback"] == 1

    @pytest.mark.asyncio
    async def test_next_turn_resumes_last_agent(self) -> None:
        """Test the agent that answered last handles the next message."""
        child = EchoAgent(name="child")
        root_model = MockModel(
            [function_call_response(("transfer_to_agent", {"agent_name": "child"}))]
        )
        root = LlmAgent(name="root", model=root_model, sub_agents=[child])
        runner = InMemoryRunner(root, app_name=APP_NAME)
        session = await _new_session(runner)

        first = await _run(runner, session.id, "route me")
        assert [e.author for e in first] == ["root", "root", "child"]

        # EchoAgent is not an LlmAgent, so it cannot keep the conversation
        root_model.responses.append([text_response("back at root")])
        second = await _run(runner, session.id, "again")
        assert [e.text for e in second] == ["back at root"]
        assert child.call_count == 1

    @pytest.mark.asyncio
    async def test_invocation_span(self, span_exporter) -> None:
        """Test invocation and agent spans are recorded, with errors marked."""
        runner = InMemoryRunner(
            LlmAgent(name="a", model=MockModel([ValueError("bad")])), app_name=APP_NAME
        )
        session = await _new_session(runner)

        with pytest.raises(ValueError):
            await _run(runner, session.id)

        spans = {span.name: span for span in span_exporter.get_finished_spans()}
        assert {"invocation", "agent_run [a]", "call_llm"} <= set(spans)
        assert spans["invocation"].status.status_code == StatusCode.ERROR
        assert spans["invocation"].attributes["session.id"] == session.id
        assert spans["agent_run [a]"].parent.span_id == spans["invocation"].context.span_id

    @pytest.mark.asyncio
    async def test_close_closes_plugins(self) -> None:
        """Test Runner.close closes every plugin."""
        closed = []

        class _Closing(BasePlugin):
            async def close(self) -> None:
                closed.append(self.name)

        runner = InMemoryRunner(EchoAgent(), plugins=[_Closing("a"), _Closing("b")])
        await runner.close()
        assert closed == ["a", "b"]

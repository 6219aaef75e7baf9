"""Tests for sessions, state scopes and the in-memory session store."""

import asyncio

import pytest

from turnflow.errors import AlreadyExistsError, SessionNotFoundError
from turnflow.events import Event, EventActions
from turnflow.sessions import GetSessionConfig, InMemorySessionService, State
from turnflow.sessions.state import DeltaState
from turnflow.types import Content

APP = "app"
USER = "u1"


def _event(author: str = "agent", text: str = "hi", **delta) -> Event:
    return Event(
        author=author,
        content=Content.from_text(text, role="model"),
        actions=EventActions(state_delta=dict(delta)),
    )


@pytest.mark.unit
class TestState:
    """Tests for State."""

    def test_mapping_behaviour(self) -> None:
        """Test State behaves like a dict."""
        state = State({"a": 1})
        state["b"] = 2
        assert dict(state) == {"a": 1, "b": 2}
        assert "a" in state
        assert len(state) == 2
        assert state == {"a": 1, "b": 2}

    def test_iteration_survives_concurrent_writes(self) -> None:
        """Test iterating while writing does not raise."""
        state = State({"a": 1, "b": 2})
        for key in state:
            state[f"{key}_copy"] = 0
        assert "a_copy" in state

    @pytest.mark.asyncio
    async def test_concurrent_writers_to_different_keys(self) -> None:
        """Test concurrent writers never lose updates."""
        state = State()

        async def writer(i: int) -> None:
            await asyncio.sleep(0)
            state[f"k{i}"] = i

        await asyncio.gather(*(writer(i) for i in range(50)))
        assert len(state) == 50

    def test_delta_state_records_writes(self) -> None:
        """Test writes through a DeltaState land in both state and delta."""
        state = State({"a": 1})
        delta: dict = {}
        view = DeltaState(state, delta)
        view["b"] = 2
        assert state["b"] == 2
        assert delta == {"b": 2}
        assert view.has_delta()
        assert view.to_dict() == {"a": 1, "b": 2}

    def test_delta_state_rejects_delete(self) -> None:
        """Test keys cannot be deleted through a DeltaState."""
        view = DeltaState(State({"a": 1}), {})
        with pytest.raises(TypeError):
            del view["a"]


@pytest.mark.unit
class TestInMemorySessionService:
    """Tests for InMemorySessionService."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, session_service: InMemorySessionService) -> None:
        """Test a created session can be read back."""
        session = await session_service.create_session(
            app_name=APP, user_id=USER, state={"k": "v"}
        )
        loaded = await session_service.get_session(
            app_name=APP, user_id=USER, session_id=session.id
        )
        assert loaded is not None
        assert loaded.id == session.id
        assert loaded.state["k"] == "v"

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, session_service: InMemorySessionService) -> None:
        """Test reusing a session id raises AlreadyExistsError."""
        await session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        with pytest.raises(AlreadyExistsError):
            await session_service.create_session(app_name=APP, user_id=USER, session_id="s1")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test a missing session is None, not an error."""
        assert (
            await session_service.get_session(app_name=APP, user_id=USER, session_id="nope")
            is None
        )

    @pytest.mark.asyncio
    async def test_append_merges_delta(self, session_service: InMemorySessionService) -> None:
        """Test appending applies the delta to the caller's copy and the store."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        await session_service.append_event(session, _event(color="blue"))

        assert session.state["color"] == "blue"
        assert len(session.events) == 1
        stored = await session_service.get_session(
            app_name=APP, user_id=USER, session_id=session.id
        )
        assert stored.state["color"] == "blue"
        assert [e.id for e in stored.events] == [e.id for e in session.events]

    @pytest.mark.asyncio
    async def test_later_delta_overwrites_key(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test two deltas for the same key leave only the last value."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        await session_service.append_event(session, _event(x=1))
        await session_service.append_event(session, _event(x=2))

        assert session.state == {"x": 2}
        stored = await session_service.get_session(
            app_name=APP, user_id=USER, session_id=session.id
        )
        assert stored.state == {"x": 2}
        assert [e.actions.state_delta for e in stored.events] == [{"x": 1}, {"x": 2}]

    @pytest.mark.asyncio
    async def test_partial_events_not_stored(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test partial events are returned but not persisted."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        partial = Event(author="a", content=Content.from_text("x", role="model"), partial=True)
        assert await session_service.append_event(session, partial) is partial
        assert session.events == []

    @pytest.mark.asyncio
    async def test_temp_keys_dropped(self, session_service: InMemorySessionService) -> None:
        """Test temp: keys never reach the stored event or the state."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        stored = await session_service.append_event(
            session, _event(**{"temp:scratch": 1, "keep": 2})
        )
        assert stored.actions.state_delta == {"keep": 2}
        assert "temp:scratch" not in session.state

    @pytest.mark.asyncio
    async def test_app_and_user_scopes_shared(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test app: and user: keys are visible from other sessions."""
        first = await session_service.create_session(app_name=APP, user_id=USER)
        await session_service.append_event(
            first, _event(**{"app:theme": "dark", "user:lang": "fr", "local": 1})
        )

        same_user = await session_service.create_session(app_name=APP, user_id=USER)
        other_user = await session_service.create_session(app_name=APP, user_id="u2")

        assert same_user.state["app:theme"] == "dark"
        assert same_user.state["user:lang"] == "fr"
        assert "local" not in same_user.state
        assert other_user.state["app:theme"] == "dark"
        assert "user:lang" not in other_user.state

    @pytest.mark.asyncio
    async def test_get_session_config_filters(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test num_recent_events keeps the newest events."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        for i in range(5):
            await session_service.append_event(session, _event(text=str(i)))
        loaded = await session_service.get_session(
            app_name=APP,
            user_id=USER,
            session_id=session.id,
            config=GetSessionConfig(num_recent_events=2),
        )
        assert [e.text for e in loaded.events] == ["3", "4"]

    @pytest.mark.asyncio
    async def test_returned_sessions_are_copies(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test mutating a returned session does not change the store."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        session.state["rogue"] = True
        loaded = await session_service.get_session(
            app_name=APP, user_id=USER, session_id=session.id
        )
        assert "rogue" not in loaded.state

    @pytest.mark.asyncio
    async def test_append_to_deleted_session(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test appending to a deleted session raises SessionNotFoundError."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        await session_service.delete_session(app_name=APP, user_id=USER, session_id=session.id)
        with pytest.raises(SessionNotFoundError):
            await session_service.append_event(session, _event())

    @pytest.mark.asyncio
    async def test_list_sessions_without_events(
        self, session_service: InMemorySessionService
    ) -> None:
        """Test listed sessions carry no events."""
        session = await session_service.create_session(app_name=APP, user_id=USER)
        await session_service.append_event(session, _event())
        sessions = await session_service.list_sessions(app_name=APP, user_id=USER)
        assert [s.id for s in sessions] == [session.id]
        assert sessions[0].events == []

"""In-memory session store, for tests and single-process deployments."""

import copy
import logging
import threading
import time
import uuid
from typing import Any

from turnflow.errors import AlreadyExistsError, SessionNotFoundError
from turnflow.events import Event
from turnflow.sessions.base_session_service import (
    BaseSessionService,
    GetSessionConfig,
    filter_events,
)
from turnflow.sessions.session import Session
from turnflow.sessions.state import State

logger = logging.getLogger(__name__)


class InMemorySessionService(BaseSessionService):
    """Session store backed by process memory.

    Callers always receive deep copies, so the stored session is only changed
    through ``append_event``. ``app:`` and ``user:`` keys live in shared
    per-app and per-user maps and are merged into every returned session.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # app_name -> user_id -> session_id -> Session
        self._sessions: dict[str, dict[str, dict[str, Session]]] = {}
        # app_name -> state
        self._app_state: dict[str, dict[str, Any]] = {}
        # app_name -> user_id -> state
        self._user_state: dict[str, dict[str, dict[str, Any]]] = {}

    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Session:
        session_id = (session_id or "").strip() or str(uuid.uuid4())
        with self._lock:
            user_sessions = self._sessions.setdefault(app_name, {}).setdefault(user_id, {})
            if session_id in user_sessions:
                raise AlreadyExistsError(
                    f"Session with id {session_id} already exists.",
                    details={"app_name": app_name, "user_id": user_id, "session_id": session_id},
                )
            session = Session(id=session_id, app_name=app_name, user_id=user_id)
            self._store_delta(session, state or {})
            session.last_update_time = time.time()
            user_sessions[session_id] = session
            logger.debug("Created session %s for user %s in app %s", session_id, user_id, app_name)
            return self._merged_copy(session)

    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: GetSessionConfig | None = None,
    ) -> Session | None:
        with self._lock:
            session = self._sessions.get(app_name, {}).get(user_id, {}).get(session_id)
            if session is None:
                return None
            result = self._merged_copy(session)
        result.events = filter_events(result.events, config)
        return result

    async def list_sessions(self, *, app_name: str, user_id: str) -> list[Session]:
        with self._lock:
            sessions = list(self._sessions.get(app_name, {}).get(user_id, {}).values())
            result = []
            for session in sessions:
                merged = self._merged_copy(session)
                merged.events = []
                result.append(merged)
        return result

    async def delete_session(self, *, app_name: str, user_id: str, session_id: str) -> None:
        with self._lock:
            removed = self._sessions.get(app_name, {}).get(user_id, {}).pop(session_id, None)
        if removed is None:
            logger.debug("delete_session: session %s not found, nothing to delete", session_id)

    async def append_event(self, session: Session, event: Event) -> Event:
        if event.partial:
            return event
        with self._lock:
            stored = (
                self._sessions.get(session.app_name, {})
                .get(session.user_id, {})
                .get(session.id)
            )
            if stored is None:
                raise SessionNotFoundError(session.app_name, session.user_id, session.id)
            event = self._apply_event(session, event)
            self._store_delta(stored, event.actions.state_delta)
            stored.events.append(event)
            stored.last_update_time = event.timestamp
        return event

    def _store_delta(self, stored: Session, delta: dict[str, Any]) -> None:
        for key, value in delta.items():
            if key.startswith(State.APP_PREFIX):
                self._app_state.setdefault(stored.app_name, {})[key] = value
            elif key.startswith(State.USER_PREFIX):
                self._user_state.setdefault(stored.app_name, {}).setdefault(stored.user_id, {})[
                    key
                ] = value
            elif not key.startswith(State.TEMP_PREFIX):
                stored.state[key] = value

    def _merged_copy(self, stored: Session) -> Session:
        result = copy.deepcopy(stored)
        result.state.apply_delta(copy.deepcopy(self._app_state.get(stored.app_name, {})))
        result.state.apply_delta(
            copy.deepcopy(self._user_state.get(stored.app_name, {}).get(stored.user_id, {}))
        )
        return result


__all__ = ["InMemorySessionService"]

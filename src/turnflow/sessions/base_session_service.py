"""Session store contract."""

import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from turnflow.events import Event
from turnflow.sessions.session import Session
from turnflow.sessions.state import State

logger = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class GetSessionConfig:
    """Filters applied to the events returned by ``get_session``.

    Attributes:
        num_recent_events: Keep only the N most recent events
        after_timestamp: Keep only events with ``timestamp >= after_timestamp``
    """

    num_recent_events: int | None = None
    after_timestamp: float | None = None


class BaseSessionService(ABC):
    """Abstract session store.

    Implementations own persistence. ``append_event`` is implemented here:
    it merges the event's state delta into the caller's session before
    returning, and subclasses extend it to persist the same change.
    """

    @abstractmethod
    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Create a new session, raising AlreadyExistsError on id reuse."""

    @abstractmethod
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: GetSessionConfig | None = None,
    ) -> Session | None:
        """Return the session, or None when it does not exist."""

    @abstractmethod
    async def list_sessions(self, *, app_name: str, user_id: str) -> list[Session]:
        """List the user's sessions, without their events."""

    @abstractmethod
    async def delete_session(self, *, app_name: str, user_id: str, session_id: str) -> None:
        """Delete a session; deleting a missing session is a no-op."""

    async def append_event(self, session: Session, event: Event) -> Event:
        """Append an event to the session and merge its state delta.

        Partial (streaming fragment) events are returned without being stored.
        ``temp:`` keys are dropped from the delta.

        Returns:
            The stored event (a revision when temp keys were dropped)
        """
        if event.partial:
            return event
        return self._apply_event(session, event)

    def _apply_event(self, session: Session, event: Event) -> Event:
        event = self._trim_temp_delta_state(event)
        self._update_session_state(session, event)
        session.events.append(event)
        session.last_update_time = event.timestamp
        return event

    def _trim_temp_delta_state(self, event: Event) -> Event:
        delta = event.actions.state_delta
        if not delta or not any(k.startswith(State.TEMP_PREFIX) for k in delta):
            return event
        trimmed = {k: v for k, v in delta.items() if not k.startswith(State.TEMP_PREFIX)}
        actions = dataclasses.replace(event.actions, state_delta=trimmed)
        return dataclasses.replace(event, actions=actions)

    def _update_session_state(self, session: Session, event: Event) -> None:
        if event.actions.state_delta:
            session.state.apply_delta(event.actions.state_delta)


def filter_events(events: list[Event], config: GetSessionConfig | None) -> list[Event]:
    """Apply a GetSessionConfig to an ordered event list."""
    if config is None:
        return list(events)
    result = list(events)
    if config.after_timestamp is not None:
        result = [e for e in result if e.timestamp >= config.after_timestamp]
    if config.num_recent_events is not None:
        result = result[-config.num_recent_events :] if config.num_recent_events > 0 else []
    return result


__all__ = ["BaseSessionService", "GetSessionConfig", "filter_events"]

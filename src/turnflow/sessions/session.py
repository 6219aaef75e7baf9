"""Session: one conversation's event log and state."""

import time
from dataclasses import dataclass, field
from typing import Any

from turnflow.events import Event
from turnflow.sessions.state import State


@dataclass(kw_only=True)
class Session:
    """A conversation between one user and one app.

    Events are only ever appended; they are never reordered or removed.
    State is mutated through event deltas merged at append time.
    """

    id: str
    app_name: str
    user_id: str
    state: State = field(default_factory=State)
    events: list[Event] = field(default_factory=list)
    last_update_time: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.state, State):
            self.state = State(self.state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "app_name": self.app_name,
            "user_id": self.user_id,
            "state": self.state.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "last_update_time": self.last_update_time,
        }


__all__ = ["Session"]

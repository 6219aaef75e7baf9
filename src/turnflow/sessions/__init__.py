"""Event log and state: sessions and session stores."""

from turnflow.sessions.base_session_service import BaseSessionService, GetSessionConfig
from turnflow.sessions.in_memory_session_service import InMemorySessionService
from turnflow.sessions.session import Session
from turnflow.sessions.state import State

__all__ = [
    "BaseSessionService",
    "GetSessionConfig",
    "InMemorySessionService",
    "Session",
    "State",
]

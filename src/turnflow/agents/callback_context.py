"""Contexts handed to instruction providers, callbacks and plugin hooks."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from turnflow.events import EventActions
from turnflow.sessions.state import DeltaState
from turnflow.types import Content, Part

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.sessions.session import Session


class ReadonlyContext:
    """Read-only view of an invocation, given to instruction providers."""

    def __init__(self, invocation_context: InvocationContext) -> None:
        self._invocation_context = invocation_context

    @property
    def invocation_context(self) -> InvocationContext:
        return self._invocation_context

    @property
    def invocation_id(self) -> str:
        return self._invocation_context.invocation_id

    @property
    def agent_name(self) -> str:
        return self._invocation_context.agent.name

    @property
    def user_content(self) -> Content | None:
        return self._invocation_context.user_content

    @property
    def session(self) -> Session:
        return self._invocation_context.session

    @property
    def state(self) -> Mapping[str, Any]:
        return MappingProxyType(self._invocation_context.session.state.to_dict())


class CallbackContext(ReadonlyContext):
    """Mutable context for agent/model callbacks.

    State writes are recorded in ``actions.state_delta`` and artifact saves in
    ``actions.artifact_delta``; the caller attaches ``actions`` to the event it
    emits.
    """

    def __init__(
        self,
        invocation_context: InvocationContext,
        *,
        event_actions: EventActions | None = None,
    ) -> None:
        super().__init__(invocation_context)
        self._event_actions = event_actions or EventActions()
        self._state = DeltaState(
            invocation_context.session.state, self._event_actions.state_delta
        )

    @property
    def state(self) -> DeltaState:  # type: ignore[override]
        return self._state

    @property
    def actions(self) -> EventActions:
        return self._event_actions

    async def load_artifact(self, filename: str, version: int | None = None) -> Part | None:
        service = self._invocation_context.artifact_service
        if service is None:
            raise ValueError("Artifact service is not initialized.")
        return await service.load_artifact(
            app_name=self._invocation_context.app_name,
            user_id=self._invocation_context.user_id,
            session_id=self._invocation_context.session.id,
            filename=filename,
            version=version,
        )

    async def save_artifact(self, filename: str, artifact: Part) -> int:
        service = self._invocation_context.artifact_service
        if service is None:
            raise ValueError("Artifact service is not initialized.")
        version = await service.save_artifact(
            app_name=self._invocation_context.app_name,
            user_id=self._invocation_context.user_id,
            session_id=self._invocation_context.session.id,
            filename=filename,
            artifact=artifact,
        )
        self._event_actions.artifact_delta[filename] = version
        return version

    async def list_artifacts(self) -> list[str]:
        service = self._invocation_context.artifact_service
        if service is None:
            raise ValueError("Artifact service is not initialized.")
        return await service.list_artifact_keys(
            app_name=self._invocation_context.app_name,
            user_id=self._invocation_context.user_id,
            session_id=self._invocation_context.session.id,
        )


__all__ = ["CallbackContext", "ReadonlyContext"]

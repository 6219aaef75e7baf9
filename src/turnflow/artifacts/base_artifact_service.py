"""Artifact store contract."""

from abc import ABC, abstractmethod

from turnflow.types import Part


class BaseArtifactService(ABC):
    """Abstract versioned blob store keyed by (app, user, session, filename).

    Filenames starting with ``user:`` are scoped to the user rather than to
    one session.
    """

    @abstractmethod
    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        """Save an artifact and return its version, starting at 0."""

    @abstractmethod
    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:
        """Load the given (default: latest) version, or None if missing."""

    @abstractmethod
    async def list_artifact_keys(
        self, *, app_name: str, user_id: str, session_id: str
    ) -> list[str]:
        """List artifact filenames visible from the session, sorted."""

    @abstractmethod
    async def delete_artifact(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> None:
        """Delete every version of an artifact."""

    @abstractmethod
    async def list_versions(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> list[int]:
        """List the stored versions of an artifact."""


__all__ = ["BaseArtifactService"]

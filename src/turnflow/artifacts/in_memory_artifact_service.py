"""In-memory artifact store."""

import logging
import threading

from turnflow.artifacts.base_artifact_service import BaseArtifactService
from turnflow.types import Part

logger = logging.getLogger(__name__)

_USER_NAMESPACE_PREFIX = "user:"


class InMemoryArtifactService(BaseArtifactService):
    """Artifact store backed by a dict of version lists."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: dict[str, list[Part]] = {}

    @staticmethod
    def _artifact_path(app_name: str, user_id: str, session_id: str, filename: str) -> str:
        if filename.startswith(_USER_NAMESPACE_PREFIX):
            return f"{app_name}/{user_id}/user/{filename}"
        return f"{app_name}/{user_id}/{session_id}/{filename}"

    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        with self._lock:
            versions = self._artifacts.setdefault(path, [])
            versions.append(artifact)
            version = len(versions) - 1
        logger.debug("Saved artifact %s version %d", path, version)
        return version

    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        with self._lock:
            versions = self._artifacts.get(path)
            if not versions:
                return None
            if version is None:
                return versions[-1]
            if 0 <= version < len(versions):
                return versions[version]
            return None

    async def list_artifact_keys(
        self, *, app_name: str, user_id: str, session_id: str
    ) -> list[str]:
        session_prefix = f"{app_name}/{user_id}/{session_id}/"
        user_prefix = f"{app_name}/{user_id}/user/"
        keys = []
        with self._lock:
            for path in self._artifacts:
                if path.startswith(session_prefix):
                    keys.append(path[len(session_prefix) :])
                elif path.startswith(user_prefix):
                    keys.append(path[len(user_prefix) :])
        return sorted(keys)

    async def delete_artifact(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> None:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        with self._lock:
            self._artifacts.pop(path, None)

    async def list_versions(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> list[int]:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        with self._lock:
            return list(range(len(self._artifacts.get(path, []))))


__all__ = ["InMemoryArtifactService"]

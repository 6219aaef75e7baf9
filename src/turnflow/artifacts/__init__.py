"""Artifact stores."""

from turnflow.artifacts.base_artifact_service import BaseArtifactService
from turnflow.artifacts.in_memory_artifact_service import InMemoryArtifactService

__all__ = ["BaseArtifactService", "InMemoryArtifactService"]

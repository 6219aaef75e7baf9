"""Shared fixtures for turnflow tests."""

from collections.abc import Iterator

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from turnflow.artifacts import InMemoryArtifactService
from turnflow.sessions import InMemorySessionService
from turnflow.telemetry.config import _reset_providers, configure_tracer_provider
from turnflow.tests.testing_utils import APP_NAME, USER_ID


@pytest.fixture
def session_service() -> InMemorySessionService:
    return InMemorySessionService()


@pytest.fixture
def artifact_service() -> InMemoryArtifactService:
    return InMemoryArtifactService()


@pytest.fixture
async def session(session_service: InMemorySessionService):
    """An empty session in the test app."""
    return await session_service.create_session(app_name=APP_NAME, user_id=USER_ID)


@pytest.fixture
def span_exporter() -> Iterator[InMemorySpanExporter]:
    """Route turnflow spans to an in-memory exporter for the duration of a test."""
    exporter = InMemorySpanExporter()
    configure_tracer_provider(span_exporter=exporter, force_reset=True)
    yield exporter
    _reset_providers()

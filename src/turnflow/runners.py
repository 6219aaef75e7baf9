"""Runner: the entry point of every invocation.

A Runner binds an agent tree to a session service, an optional artifact
service and a set of plugins. ``run_async`` handles one user message;
``run_live`` drives a duplex conversation fed by a LiveRequestQueue. Both
return lazy event streams: nothing happens until the caller iterates, and
stopping iteration (``aclose``) tears the pipeline down.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from typing import Any

from turnflow.agents.base_agent import BaseAgent
from turnflow.agents.invocation_context import InvocationContext, new_invocation_context_id
from turnflow.agents.live_request_queue import ActiveStreamingTool, LiveRequestQueue
from turnflow.agents.llm_agent import LlmAgent
from turnflow.agents.run_config import RunConfig, StreamingMode
from turnflow.agents.transfer import find_agent_to_run
from turnflow.artifacts.base_artifact_service import BaseArtifactService
from turnflow.artifacts.in_memory_artifact_service import InMemoryArtifactService
from turnflow.errors import ConfigurationError, SessionNotFoundError
from turnflow.events import MODEL_AUTHOR, USER_AUTHOR, Event, EventActions
from turnflow.plugins.base_plugin import BasePlugin
from turnflow.plugins.plugin_manager import PluginManager
from turnflow.sessions.base_session_service import BaseSessionService
from turnflow.sessions.in_memory_session_service import InMemorySessionService
from turnflow.sessions.session import Session
from turnflow.telemetry import traced_stream
from turnflow.tools.function_tool import FunctionTool
from turnflow.types import Content, Part

logger = logging.getLogger(__name__)


class Runner:
    """Runs an agent tree against a session.

    Args:
        app_name: Application the sessions belong to
        agent: Root of the agent tree
        session_service: Event log and state store
        artifact_service: Store for off-loaded user blobs and agent artifacts
        plugins: Plugins applied to every invocation, in order

    Example:
        runner = InMemoryRunner(agent=root_agent)
        session = await runner.session_service.create_session(
            app_name=runner.app_name, user_id="u1"
        )
        async for event in runner.run_async(
            user_id="u1", session_id=session.id, new_message=Content.from_text("hello")
        ):
            print(event.author, event.text)
    """

    def __init__(
        self,
        *,
        app_name: str,
        agent: BaseAgent,
        session_service: BaseSessionService,
        artifact_service: BaseArtifactService | None = None,
        plugins: list[BasePlugin] | None = None,
    ) -> None:
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service
        self.artifact_service = artifact_service
        self.plugin_manager = PluginManager(plugins)

    def run_async(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Content | None,
        run_config: RunConfig | None = None,
        state_delta: dict[str, Any] | None = None,
    ) -> AsyncGenerator[Event, None]:
        """Handle one user message.

        Returns:
            Lazy stream of the invocation's events, traced as ``invocation``.
            Errors, including a missing session, are raised from the stream.
        """
        return traced_stream(
            "invocation",
            self._run_async_impl(
                user_id=user_id,
                session_id=session_id,
                new_message=new_message,
                run_config=run_config or RunConfig(),
                state_delta=state_delta,
            ),
            {"app.name": self.app_name, "user.id": user_id, "session.id": session_id},
        )

    async def _run_async_impl(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Content | None,
        run_config: RunConfig,
        state_delta: dict[str, Any] | None,
    ) -> AsyncGenerator[Event, None]:
        session = await self._get_session(user_id, session_id)
        ctx = self._new_invocation_context(
            session, user_content=new_message, run_config=run_config
        )
        logger.debug("Starting invocation %s for session %s", ctx.invocation_id, session.id)

        if new_message is not None:
            modified = await self.plugin_manager.run_on_user_message_callback(
                invocation_context=ctx, user_message=new_message
            )
            if modified is not None:
                new_message = modified

        if new_message is not None and new_message.parts:
            new_message = await self._append_new_message_to_session(
                session, new_message, ctx, run_config.save_input_blobs_as_artifacts, state_delta
            )
        ctx.user_content = new_message

        # Re-read so the context sees state merged by the store
        session = await self._get_session(user_id, session_id)
        ctx.session = session
        ctx.agent = find_agent_to_run(session, self.agent)

        async with aclosing(
            self._exec_with_plugin(ctx, lambda c: c.agent.run_async(c))
        ) as events:
            async for event in events:
                yield event

    async def _exec_with_plugin(
        self,
        ctx: InvocationContext,
        execute_fn: Callable[[InvocationContext], AsyncGenerator[Event, None]],
    ) -> AsyncGenerator[Event, None]:
        """Wrap agent execution with the run-level plugin hooks.

        ``after_run_callback`` runs once the pipeline has started, however
        the stream ends.
        """
        try:
            early_exit = await self.plugin_manager.run_before_run_callback(invocation_context=ctx)
            if early_exit is not None:
                logger.debug("before_run callback answered invocation %s", ctx.invocation_id)
                yield Event(
                    invocation_id=ctx.invocation_id,
                    author=MODEL_AUTHOR,
                    content=early_exit,
                )
                return

            async with aclosing(execute_fn(ctx)) as events:
                async for event in events:
                    await self.session_service.append_event(ctx.session, event)
                    modified = await self.plugin_manager.run_on_event_callback(
                        invocation_context=ctx, event=event
                    )
                    yield modified if modified is not None else event
        finally:
            await self.plugin_manager.run_after_run_callback(invocation_context=ctx)

    async def _append_new_message_to_session(
        self,
        session: Session,
        new_message: Content,
        ctx: InvocationContext,
        save_input_blobs_as_artifacts: bool,
        state_delta: dict[str, Any] | None,
    ) -> Content:
        if save_input_blobs_as_artifacts and any(p.inline_data for p in new_message.parts):
            if self.artifact_service is None:
                raise ConfigurationError(
                    "Artifact service is not initialized.",
                    details={"app_name": self.app_name},
                )
            parts = list(new_message.parts)
            for i, part in enumerate(parts):
                if part.inline_data is None:
                    continue
                file_name = f"artifact_{ctx.invocation_id}_{i}"
                await self.artifact_service.save_artifact(
                    app_name=self.app_name,
                    user_id=session.user_id,
                    session_id=session.id,
                    filename=file_name,
                    artifact=part,
                )
                parts[i] = Part(
                    text=f"Uploaded file: {file_name}. It has been saved to the artifacts"
                )
            new_message = dataclasses.replace(new_message, parts=tuple(parts))

        event = Event(
            invocation_id=ctx.invocation_id,
            author=USER_AUTHOR,
            content=new_message,
            actions=EventActions(state_delta=dict(state_delta or {})),
        )
        await self.session_service.append_event(session, event)
        return new_message

    def run_live(
        self,
        *,
        live_request_queue: LiveRequestQueue,
        user_id: str | None = None,
        session_id: str | None = None,
        session: Session | None = None,
        run_config: RunConfig | None = None,
    ) -> AsyncGenerator[Event, None]:
        """Run a live (duplex) conversation.

        Pass either ``session`` or ``user_id`` and ``session_id``. The caller
        must ``close()`` the queue to end the conversation. Every complete
        event is appended to the session; plugin ``on_event`` hooks are not
        applied in live mode.
        """
        return traced_stream(
            "invocation",
            self._run_live_impl(
                live_request_queue=live_request_queue,
                user_id=user_id,
                session_id=session_id,
                session=session,
                run_config=run_config or RunConfig(streaming_mode=StreamingMode.BIDI),
            ),
            {"app.name": self.app_name, "invocation.live": True},
        )

    async def _run_live_impl(
        self,
        *,
        live_request_queue: LiveRequestQueue,
        user_id: str | None,
        session_id: str | None,
        session: Session | None,
        run_config: RunConfig,
    ) -> AsyncGenerator[Event, None]:
        if session is None:
            if user_id is None or session_id is None:
                raise ValueError("run_live requires either a session or user_id and session_id.")
            session = await self._get_session(user_id, session_id)

        run_config = self._live_run_config(run_config)
        ctx = self._new_invocation_context(
            session,
            run_config=run_config,
            live_request_queue=live_request_queue,
            active_streaming_tools={},
        )
        ctx.agent = find_agent_to_run(session, self.agent)
        self._register_streaming_tool_queues(ctx)

        async with aclosing(ctx.agent.run_live(ctx)) as events:
            async for event in events:
                await self.session_service.append_event(session, event)
                yield event

    def _live_run_config(self, run_config: RunConfig) -> RunConfig:
        """Multi-agent trees default to audio output with transcription both ways."""
        if not self.agent.sub_agents:
            return run_config
        changes: dict[str, Any] = {}
        modalities = run_config.response_modalities
        if not modalities:
            modalities = ["AUDIO"]
            changes["response_modalities"] = modalities
        if "AUDIO" in modalities and run_config.output_audio_transcription is None:
            changes["output_audio_transcription"] = True
        if run_config.input_audio_transcription is None:
            changes["input_audio_transcription"] = True
        return dataclasses.replace(run_config, **changes) if changes else run_config

    def _register_streaming_tool_queues(self, ctx: InvocationContext) -> None:
        """Give each tool consuming a live input stream its own sub-queue."""
        if not isinstance(ctx.agent, LlmAgent) or ctx.active_streaming_tools is None:
            return
        for tool in ctx.agent.canonical_tools:
            if isinstance(tool, FunctionTool) and tool.live_input_parameter:
                logger.debug("Registering live input queue for streaming tool %s", tool.name)
                ctx.active_streaming_tools[tool.name] = ActiveStreamingTool(
                    stream=LiveRequestQueue()
                )

    async def _get_session(self, user_id: str, session_id: str) -> Session:
        session = await self.session_service.get_session(
            app_name=self.app_name, user_id=user_id, session_id=session_id
        )
        if session is None:
            raise SessionNotFoundError(self.app_name, user_id, session_id)
        return session

    def _new_invocation_context(
        self,
        session: Session,
        *,
        run_config: RunConfig,
        user_content: Content | None = None,
        live_request_queue: LiveRequestQueue | None = None,
        active_streaming_tools: dict[str, ActiveStreamingTool] | None = None,
    ) -> InvocationContext:
        return InvocationContext(
            session_service=self.session_service,
            artifact_service=self.artifact_service,
            plugin_manager=self.plugin_manager,
            invocation_id=new_invocation_context_id(),
            agent=self.agent,
            session=session,
            user_content=user_content,
            run_config=run_config,
            live_request_queue=live_request_queue,
            active_streaming_tools=active_streaming_tools,
        )

    async def close(self) -> None:
        """Close every plugin."""
        await self.plugin_manager.close()


class InMemoryRunner(Runner):
    """Runner backed by in-memory session and artifact services."""

    def __init__(
        self,
        agent: BaseAgent,
        *,
        app_name: str = "InMemoryRunner",
        plugins: list[BasePlugin] | None = None,
    ) -> None:
        super().__init__(
            app_name=app_name,
            agent=agent,
            session_service=InMemorySessionService(),
            artifact_service=InMemoryArtifactService(),
            plugins=plugins,
        )


__all__ = ["InMemoryRunner", "Runner"]

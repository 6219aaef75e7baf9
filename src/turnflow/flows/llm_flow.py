"""The reasoning loop of an LlmAgent.

One step builds a request through the request processors, calls the backend
(unless a before-model hook answers instead), turns each response into an
event, executes the function calls it carries and follows any transfer.
``run_async`` repeats steps until a final response; ``run_live`` keeps one
duplex connection open for the whole conversation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from turnflow.agents.callback_context import CallbackContext
from turnflow.agents.run_config import StreamingMode
from turnflow.errors import AgentNotFoundError
from turnflow.events import Event, EventActions
from turnflow.flows.agent_transfer import AgentTransferRequestProcessor
from turnflow.flows.basic import BasicRequestProcessor
from turnflow.flows.contents import ContentsRequestProcessor
from turnflow.flows.functions import (
    get_long_running_function_calls,
    handle_function_calls_async,
    handle_function_calls_live,
    populate_client_function_call_id,
)
from turnflow.flows.identity import IdentityRequestProcessor
from turnflow.flows.instructions import InstructionsRequestProcessor
from turnflow.flows.processors import (
    RequestProcessor,
    ResponseProcessor,
    run_request_processors,
    run_response_processors,
)
from turnflow.models.base_llm_connection import BaseLlmConnection
from turnflow.models.llm_request import LlmRequest
from turnflow.models.llm_response import LlmResponse
from turnflow.telemetry import traced_stream
from turnflow.tools.tool_context import ToolContext

if TYPE_CHECKING:
    from turnflow.agents.invocation_context import InvocationContext
    from turnflow.agents.llm_agent import LlmAgent

logger = logging.getLogger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _is_empty_response(llm_response: LlmResponse) -> bool:
    return (
        not llm_response.content
        and not llm_response.error_code
        and not llm_response.interrupted
        and not llm_response.turn_complete
    )


class LlmFlow:
    """Drives an LlmAgent: request processors, backend calls, tools, transfers.

    Args:
        extra_request_processors: Run after the built-in request processors
        response_processors: Run in order on every backend response
    """

    def __init__(
        self,
        *,
        extra_request_processors: Sequence[RequestProcessor] | None = None,
        response_processors: Sequence[ResponseProcessor] | None = None,
    ) -> None:
        self.request_processors: list[RequestProcessor] = [
            BasicRequestProcessor(),
            IdentityRequestProcessor(),
            InstructionsRequestProcessor(),
            ContentsRequestProcessor(),
            AgentTransferRequestProcessor(),
            *(extra_request_processors or []),
        ]
        self.response_processors: list[ResponseProcessor] = list(response_processors or [])

    # ------------------------------------------------------------------
    # run_async
    # ------------------------------------------------------------------

    async def run_async(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Run steps until the agent produces a final response."""
        while True:
            last_event: Event | None = None
            async with aclosing(self._run_one_step_async(ctx)) as events:
                async for event in events:
                    last_event = event
                    yield event

            if ctx.end_invocation or last_event is None or last_event.is_final_response():
                break
            if last_event.partial:
                logger.warning("The last event of agent %s is partial, stopping.", ctx.agent.name)
                break

    async def _run_one_step_async(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        llm_request, events = await self._preprocess_async(ctx)
        for event in events:
            yield event
        if ctx.end_invocation:
            return

        # State changes made by model hooks land on this step's model event
        step_actions = EventActions()
        async with aclosing(self._call_llm_async(ctx, llm_request, step_actions)) as responses:
            async for llm_response in responses:
                async with aclosing(
                    self._postprocess_async(ctx, llm_request, llm_response, step_actions)
                ) as events:
                    async for event in events:
                        yield event

    async def _preprocess_async(
        self, ctx: InvocationContext
    ) -> tuple[LlmRequest, tuple[Event, ...]]:
        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        result = await run_request_processors(self.request_processors, ctx, LlmRequest())
        llm_request = result.updated_request

        tool_context = ToolContext(ctx)
        for tool in agent.canonical_tools:
            await tool.process_llm_request(tool_context=tool_context, llm_request=llm_request)
        return llm_request, result.events

    async def _call_llm_async(
        self, ctx: InvocationContext, llm_request: LlmRequest, step_actions: EventActions
    ) -> AsyncGenerator[LlmResponse, None]:
        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        callback_context = CallbackContext(ctx, event_actions=step_actions)

        if response := await self._handle_before_model_callback(
            ctx, llm_request, callback_context
        ):
            yield response
            return

        ctx.increment_llm_call_count()
        llm = agent.canonical_model
        stream = ctx.run_config.streaming_mode == StreamingMode.SSE
        responses = traced_stream(
            "call_llm",
            llm.generate_content_async(llm_request, stream=stream),
            {"llm.model": llm_request.model or llm.model, "llm.stream": stream},
        )
        try:
            async with aclosing(responses):
                async for llm_response in responses:
                    yield llm_response
        except Exception as e:
            recovered = await self._handle_model_error(ctx, llm_request, callback_context, e)
            if recovered is None:
                raise
            logger.info("Model error recovered by on_model_error callback: %s", e)
            yield recovered

    async def _postprocess_async(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        step_actions: EventActions,
    ) -> AsyncGenerator[Event, None]:
        callback_context = CallbackContext(ctx, event_actions=step_actions)
        if altered := await self._handle_after_model_callback(
            ctx, llm_response, callback_context
        ):
            llm_response = altered

        result = await run_response_processors(self.response_processors, ctx, llm_response)
        for event in result.events:
            yield event
        llm_response = result.updated_response

        model_response_event: Event | None = None
        if not _is_empty_response(llm_response):
            model_response_event = self._build_model_response_event(
                ctx, llm_request, llm_response, step_actions
            )
            yield model_response_event

        if result.transfer_to_agent:
            async with aclosing(self._run_transfer(ctx, result.transfer_to_agent)) as events:
                async for event in events:
                    yield event
            return

        if (
            model_response_event is not None
            and not model_response_event.partial
            and model_response_event.get_function_calls()
        ):
            function_response_event = await handle_function_calls_async(
                ctx, model_response_event, llm_request.tools_dict
            )
            if function_response_event is None:
                return
            yield function_response_event
            if agent_name := function_response_event.actions.transfer_to_agent:
                async with aclosing(self._run_transfer(ctx, agent_name)) as events:
                    async for event in events:
                        yield event

    def _build_model_response_event(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        step_actions: EventActions,
    ) -> Event:
        content = populate_client_function_call_id(llm_response.content)
        long_running_tool_ids = None
        if content is not None and not llm_response.partial:
            function_calls = [p.function_call for p in content.parts if p.function_call]
            long_running_tool_ids = (
                get_long_running_function_calls(function_calls, llm_request.tools_dict) or None
            )
        return Event(
            invocation_id=ctx.invocation_id,
            author=ctx.agent.name,
            branch=ctx.branch,
            content=content,
            # Partial events are never persisted, so they carry no side effects
            actions=EventActions() if llm_response.partial else step_actions.copy(),
            partial=llm_response.partial,
            turn_complete=llm_response.turn_complete,
            interrupted=llm_response.interrupted,
            error_code=llm_response.error_code,
            error_message=llm_response.error_message,
            long_running_tool_ids=long_running_tool_ids,
        )

    async def _run_transfer(
        self, ctx: InvocationContext, agent_name: str
    ) -> AsyncGenerator[Event, None]:
        root_agent = ctx.agent.root_agent
        target = root_agent.find_agent(agent_name)
        if target is None:
            raise AgentNotFoundError(agent_name, root_agent_name=root_agent.name)
        logger.info("Transferring from agent %s to agent %s", ctx.agent.name, target.name)
        async with aclosing(target.run_async(ctx)) as events:
            async for event in events:
                yield event

    # ------------------------------------------------------------------
    # Model callbacks
    # ------------------------------------------------------------------

    async def _handle_before_model_callback(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        callback_context: CallbackContext,
    ) -> LlmResponse | None:
        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        response = await ctx.plugin_manager.run_before_model_callback(
            callback_context=callback_context, llm_request=llm_request
        )
        if response is not None:
            return response
        for callback in agent.canonical_before_model_callbacks:
            response = await _maybe_await(
                callback(callback_context=callback_context, llm_request=llm_request)
            )
            if response is not None:
                return response
        return None

    async def _handle_after_model_callback(
        self,
        ctx: InvocationContext,
        llm_response: LlmResponse,
        callback_context: CallbackContext,
    ) -> LlmResponse | None:
        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        response = await ctx.plugin_manager.run_after_model_callback(
            callback_context=callback_context, llm_response=llm_response
        )
        if response is not None:
            return response
        for callback in agent.canonical_after_model_callbacks:
            response = await _maybe_await(
                callback(callback_context=callback_context, llm_response=llm_response)
            )
            if response is not None:
                return response
        return None

    async def _handle_model_error(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        callback_context: CallbackContext,
        error: Exception,
    ) -> LlmResponse | None:
        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        response = await ctx.plugin_manager.run_on_model_error_callback(
            callback_context=callback_context, llm_request=llm_request, error=error
        )
        if response is not None:
            return response
        for callback in agent.canonical_on_model_error_callbacks:
            response = await _maybe_await(
                callback(callback_context=callback_context, llm_request=llm_request, error=error)
            )
            if response is not None:
                return response
        return None

    # ------------------------------------------------------------------
    # run_live
    # ------------------------------------------------------------------

    async def run_live(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Run the agent over a duplex backend connection.

        Inbound requests are read from ``ctx.live_request_queue`` by a sender
        task; closing that queue closes the connection and ends the stream.
        A transfer closes the connection and continues live on the target.
        """
        if ctx.live_request_queue is None:
            raise ValueError("run_live requires a live_request_queue on the invocation context.")

        llm_request, events = await self._preprocess_async(ctx)
        for event in events:
            yield event
        if ctx.end_invocation:
            return

        agent: LlmAgent = ctx.agent  # type: ignore[assignment]
        transfer_to_agent: str | None = None
        try:
            async with agent.canonical_model.connect(llm_request) as connection:
                if llm_request.contents:
                    logger.debug("Sending history to model: %d contents", len(llm_request.contents))
                    await connection.send_history(llm_request.contents)

                send_task = asyncio.create_task(
                    self._send_to_model(connection, ctx), name=f"live_sender [{agent.name}]"
                )
                try:
                    async with aclosing(
                        self._receive_from_model(connection, ctx, llm_request)
                    ) as events:
                        async for event in events:
                            # Tool results reach the model even if the consumer stops here
                            if event.get_function_responses() and event.content:
                                ctx.live_request_queue.send_content(event.content)
                            yield event
                            if event.actions.transfer_to_agent:
                                transfer_to_agent = event.actions.transfer_to_agent
                                break
                finally:
                    if not send_task.done():
                        send_task.cancel()
                    await asyncio.gather(send_task, return_exceptions=True)

                if not send_task.cancelled() and (error := send_task.exception()):
                    raise error

            if transfer_to_agent:
                root_agent = agent.root_agent
                target = root_agent.find_agent(transfer_to_agent)
                if target is None:
                    raise AgentNotFoundError(transfer_to_agent, root_agent_name=root_agent.name)
                logger.info("Transferring live session from %s to %s", agent.name, target.name)
                async with aclosing(target.run_live(ctx)) as events:
                    async for event in events:
                        yield event
        finally:
            await self._cancel_streaming_tools(ctx)

    async def _send_to_model(self, connection: BaseLlmConnection, ctx: InvocationContext) -> None:
        """Forward inbound live requests to the model until the queue is closed."""
        queue = ctx.live_request_queue
        assert queue is not None
        try:
            while True:
                live_request = await queue.get()
                for active in (ctx.active_streaming_tools or {}).values():
                    if active.stream is not None:
                        active.stream.send(live_request)

                if live_request.close:
                    logger.debug("Live request queue closed, closing connection")
                    await connection.close()
                    return
                if live_request.blob is not None:
                    await connection.send_realtime(live_request.blob)
                if live_request.content is not None:
                    await connection.send_content(live_request.content)
        except Exception:
            # Unblock the receive loop before the error is surfaced
            await connection.close()
            raise

    async def _receive_from_model(
        self,
        connection: BaseLlmConnection,
        ctx: InvocationContext,
        llm_request: LlmRequest,
    ) -> AsyncGenerator[Event, None]:
        async with aclosing(connection.receive()) as responses:
            async for llm_response in responses:
                step_actions = EventActions()
                callback_context = CallbackContext(ctx, event_actions=step_actions)
                if altered := await self._handle_after_model_callback(
                    ctx, llm_response, callback_context
                ):
                    llm_response = altered

                result = await run_response_processors(
                    self.response_processors, ctx, llm_response
                )
                for event in result.events:
                    yield event
                llm_response = result.updated_response
                if result.transfer_to_agent:
                    step_actions.transfer_to_agent = result.transfer_to_agent

                if _is_empty_response(llm_response) and not step_actions.transfer_to_agent:
                    continue

                model_response_event = self._build_model_response_event(
                    ctx, llm_request, llm_response, step_actions
                )
                yield model_response_event

                if model_response_event.partial or not model_response_event.get_function_calls():
                    continue
                function_response_event = await handle_function_calls_live(
                    ctx, model_response_event, llm_request.tools_dict
                )
                if function_response_event is not None:
                    yield function_response_event

    async def _cancel_streaming_tools(self, ctx: InvocationContext) -> None:
        tasks = [
            active.task
            for active in (ctx.active_streaming_tools or {}).values()
            if active.task is not None
        ]
        for task in tasks:
            if not task.done():
                task.cancel()
        # Finished tasks are gathered too so a stored failure is retrieved
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.debug("Streaming tool task %s ended with %r", task.get_name(), result)


__all__ = ["LlmFlow"]

"""LiteLLM adapter for turnflow."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

from litellm import acompletion

from turnflow.models.base_llm import BaseLlm
from turnflow.models.llm_request import FunctionDeclaration, LlmRequest
from turnflow.models.llm_response import LlmResponse, Usage
from turnflow.types import Content, FunctionCall, Part

logger = logging.getLogger(__name__)


class LiteLlm(BaseLlm):
    """LiteLLM-based backend.

    Supports 100+ providers through LiteLLM's unified interface.
    Providers are specified via model prefix (e.g., "openai/gpt-4o",
    "anthropic/claude-3-5-sonnet"). Extra keyword arguments (``api_key``,
    ``api_base``, ...) are passed to every completion call.

    Example:
        agent = LlmAgent(name="helper", model=LiteLlm("openai/gpt-4o-mini"))
    """

    def __init__(self, model: str, **kwargs: Any) -> None:
        super().__init__(model)
        self._completion_kwargs = kwargs

    def _build_completion_params(self, llm_request: LlmRequest) -> dict[str, Any]:
        """Build parameters for the litellm completion call."""
        config = llm_request.config
        params: dict[str, Any] = {
            "model": llm_request.model or self.model,
            "messages": self._build_messages(llm_request),
        }
        if config.temperature is not None:
            params["temperature"] = config.temperature
        if config.top_p is not None:
            params["top_p"] = config.top_p
        if config.max_output_tokens is not None:
            params["max_tokens"] = config.max_output_tokens
        if config.stop_sequences:
            params["stop"] = list(config.stop_sequences)
        if config.tools:
            params["tools"] = [self._tool_to_litellm_format(tool) for tool in config.tools]

        params.update(self._completion_kwargs)
        return params

    def _build_messages(self, llm_request: LlmRequest) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if llm_request.config.system_instruction:
            messages.append({"role": "system", "content": llm_request.config.system_instruction})
        for content in llm_request.contents:
            messages.extend(self._content_to_messages(content))
        return messages

    def _content_to_messages(self, content: Content) -> list[dict[str, Any]]:
        """Convert one Content into OpenAI-style chat messages.

        Function responses become ``tool`` messages; function calls become an
        assistant message with ``tool_calls``.
        """
        messages: list[dict[str, Any]] = []
        role = "assistant" if content.role == "model" else "user"

        tool_calls = []
        content_items: list[dict[str, Any]] = []
        for part in content.parts:
            if part.function_response:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": part.function_response.id or "",
                        "content": json.dumps(part.function_response.response, default=str),
                    }
                )
            elif part.function_call:
                tool_calls.append(
                    {
                        "id": part.function_call.id or "",
                        "type": "function",
                        "function": {
                            "name": part.function_call.name,
                            "arguments": json.dumps(part.function_call.args, default=str),
                        },
                    }
                )
            elif part.inline_data and part.inline_data.mime_type.startswith("image/"):
                encoded = base64.b64encode(part.inline_data.data).decode("ascii")
                content_items.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{part.inline_data.mime_type};base64,{encoded}"},
                    }
                )
            elif part.text and not part.thought:
                content_items.append({"type": "text", "text": part.text})

        if tool_calls:
            text = "".join(item["text"] for item in content_items if item["type"] == "text")
            messages.append({"role": "assistant", "content": text or None, "tool_calls": tool_calls})
        elif content_items:
            if all(item["type"] == "text" for item in content_items):
                message_content: Any = "".join(item["text"] for item in content_items)
            else:
                message_content = content_items
            messages.append({"role": role, "content": message_content})
        return messages

    def _tool_to_litellm_format(self, tool: FunctionDeclaration) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }

    def _parse_arguments(self, arguments: str | None) -> dict[str, Any]:
        if not arguments:
            return {}
        try:
            return json.loads(arguments)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse tool arguments: {arguments}")
            return {"raw_arguments": arguments}

    def _extract_usage(self, response: Any) -> Usage | None:
        usage = getattr(response, "usage", None)
        if not usage:
            return None
        return Usage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )

    def _build_content(self, text: str, tool_calls: list[FunctionCall]) -> Content | None:
        parts = []
        if text:
            parts.append(Part(text=text))
        parts.extend(Part(function_call=call) for call in tool_calls)
        if not parts:
            return None
        return Content(role="model", parts=tuple(parts))

    async def generate_content_async(
        self, llm_request: LlmRequest, stream: bool = False
    ) -> AsyncGenerator[LlmResponse, None]:
        params = self._build_completion_params(llm_request)
        logger.debug("LiteLlm request: model=%s stream=%s", params["model"], stream)
        if stream:
            async for response in self._stream(params):
                yield response
            return

        try:
            response = await acompletion(**params)
        except Exception as e:
            logger.error(f"LiteLLM generate error: {e}")
            raise

        text = ""
        tool_calls: list[FunctionCall] = []
        finish_reason = None
        if response.choices:
            choice = response.choices[0]
            text = choice.message.content or ""
            for tc in getattr(choice.message, "tool_calls", None) or []:
                tool_calls.append(
                    FunctionCall(
                        id=tc.id,
                        name=tc.function.name,
                        args=self._parse_arguments(tc.function.arguments),
                    )
                )
            finish_reason = choice.finish_reason

        yield LlmResponse(
            content=self._build_content(text, tool_calls),
            finish_reason=finish_reason,
            usage=self._extract_usage(response),
            turn_complete=True,
        )

    async def _stream(self, params: dict[str, Any]) -> AsyncGenerator[LlmResponse, None]:
        """Stream partial text responses, then one aggregated final response.

        Tool call fragments are accumulated by index and only surface in the
        final response, once their JSON arguments are complete.
        """
        params = {**params, "stream": True}
        text_chunks: list[str] = []
        pending_calls: dict[int, dict[str, str]] = {}
        finish_reason = None
        usage = None

        try:
            response = await acompletion(**params)
            async for chunk in response:
                usage = self._extract_usage(chunk) or usage
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = getattr(choice, "delta", None)

                text = getattr(delta, "content", None) if delta else None
                if text:
                    text_chunks.append(text)
                    yield LlmResponse(
                        content=Content(role="model", parts=(Part(text=text),)), partial=True
                    )

                for tc in (getattr(delta, "tool_calls", None) if delta else None) or []:
                    index = getattr(tc, "index", 0) or 0
                    entry = pending_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                    if getattr(tc, "id", None):
                        entry["id"] = tc.id
                    function = getattr(tc, "function", None)
                    if function is not None:
                        if getattr(function, "name", None):
                            entry["name"] += function.name
                        if getattr(function, "arguments", None):
                            entry["arguments"] += function.arguments

                if getattr(choice, "finish_reason", None):
                    finish_reason = choice.finish_reason
        except Exception as e:
            logger.error(f"LiteLLM stream error: {e}")
            raise

        tool_calls = [
            FunctionCall(
                id=entry["id"] or None,
                name=entry["name"],
                args=self._parse_arguments(entry["arguments"]),
            )
            for _, entry in sorted(pending_calls.items())
        ]
        yield LlmResponse(
            content=self._build_content("".join(text_chunks), tool_calls),
            finish_reason=finish_reason,
            usage=usage,
            turn_complete=True,
        )


__all__ = ["LiteLlm"]

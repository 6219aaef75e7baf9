"""Tools wrapping plain Python callables.

Provides:
- infer_type_schema: Infer JSON Schema from Python type hints
- FunctionTool: Expose a sync/async function, or an async generator for
  live streaming, as a tool

Parameters named ``tool_context`` receive the ToolContext, and a parameter
annotated ``LiveRequestQueue`` receives the tool's live input stream; neither
is advertised to the model.
"""

import inspect
import logging
import types
import typing
from collections.abc import AsyncGenerator, Callable
from dataclasses import MISSING, fields, is_dataclass
from typing import Any, Union, get_args, get_origin

from turnflow.agents.live_request_queue import LiveRequestQueue
from turnflow.models.llm_request import FunctionDeclaration
from turnflow.tools.base_tool import BaseTool
from turnflow.tools.tool_context import ToolContext

logger = logging.getLogger(__name__)

_TOOL_CONTEXT_PARAM = "tool_context"

# Type mapping for JSON Schema
_TYPE_MAPPING: dict[type, dict[str, Any]] = {
    str: {"type": "string"},
    int: {"type": "integer"},
    float: {"type": "number"},
    bool: {"type": "boolean"},
}


def infer_type_schema(type_hint: Any) -> dict[str, Any]:
    """Infer JSON Schema from a Python type hint.

    Supports:
    - Primitives: str, int, float, bool
    - Optional[T] / T | None: {"type": T, "nullable": true}
    - list[T]: {"type": "array", "items": T}
    - dict[str, T]: {"type": "object", "additionalProperties": T}
    - Union types: {"anyOf": [...]}
    - Dataclass fields: Extract each field

    Args:
        type_hint: Python type hint

    Returns:
        JSON Schema dictionary for type
    """
    if is_dataclass(type_hint):
        return _infer_dataclass_schema(type_hint)

    origin = get_origin(type_hint)

    if origin is Union or origin is types.UnionType:
        args = get_args(type_hint)
        non_none_args = [a for a in args if a is not type(None)]
        if len(non_none_args) == 1:
            schema = infer_type_schema(non_none_args[0])
            schema["nullable"] = True
            return schema
        return {"anyOf": [infer_type_schema(a) for a in non_none_args]}

    if origin is list or type_hint is list:
        args = get_args(type_hint)
        if args:
            return {"type": "array", "items": infer_type_schema(args[0])}
        return {"type": "array"}

    if origin is dict or type_hint is dict:
        args = get_args(type_hint)
        if len(args) >= 2:
            return {"type": "object", "additionalProperties": infer_type_schema(args[1])}
        return {"type": "object"}

    if type_hint in _TYPE_MAPPING:
        return _TYPE_MAPPING[type_hint].copy()

    # Fallback: treat as string
    return {"type": "string"}


def _infer_dataclass_schema(dataclass_type: Any) -> dict[str, Any]:
    properties = {}
    required = []
    for field in fields(dataclass_type):
        properties[field.name] = infer_type_schema(field.type)
        if field.default is MISSING and field.default_factory is MISSING:
            required.append(field.name)
    return {"type": "object", "properties": properties, "required": required}


def _parse_param_docstring(docstring: str) -> dict[str, str]:
    """Parse parameter descriptions from a Google-style ``Args:`` section."""
    result: dict[str, str] = {}
    if not docstring:
        return result

    in_args = False
    for line in docstring.strip().split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("Args:") or stripped.startswith("Parameters:"):
            in_args = True
            continue
        if stripped.startswith("Returns:") or stripped.startswith("Yields:"):
            break
        if in_args and ":" in stripped:
            name, desc = stripped.split(":", 1)
            name = name.strip()
            if name.isidentifier():
                result[name] = desc.strip()
    return result


def _summary(docstring: str) -> str:
    """Docstring text before the first section header."""
    lines = []
    for line in docstring.strip().split("\n"):
        if line.strip() in ("Args:", "Parameters:", "Returns:", "Yields:", "Raises:"):
            break
        lines.append(line.rstrip())
    return "\n".join(lines).strip()


class FunctionTool(BaseTool):
    """A tool backed by a Python callable.

    Example:
        async def get_weather(city: str) -> dict:
            '''Get the current weather.

            Args:
                city: City name
            '''
            return {"city": city, "forecast": "sunny"}

        agent = LlmAgent(name="weather", model=..., tools=[get_weather])
    """

    def __init__(self, func: Callable[..., Any], *, is_long_running: bool = False) -> None:
        docstring = inspect.getdoc(func) or ""
        super().__init__(
            name=getattr(func, "__name__", type(func).__name__),
            description=_summary(docstring),
            is_long_running=is_long_running,
        )
        self.func = func
        self._signature = inspect.signature(func)
        try:
            self._type_hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            self._type_hints = {}
        self._param_descriptions = _parse_param_docstring(docstring)

    @property
    def is_streaming(self) -> bool:
        """Whether the tool yields results over time (live mode)."""
        return inspect.isasyncgenfunction(self.func)

    @property
    def live_input_parameter(self) -> str | None:
        """Name of the parameter receiving a live input stream, if any."""
        for name, param in self._signature.parameters.items():
            annotation = self._type_hints.get(name, param.annotation)
            if annotation is LiveRequestQueue:
                return name
        return None

    def _model_parameters(self) -> list[inspect.Parameter]:
        live_param = self.live_input_parameter
        return [
            param
            for name, param in self._signature.parameters.items()
            if name not in ("self", _TOOL_CONTEXT_PARAM, live_param)
            and param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
        ]

    def get_declaration(self) -> FunctionDeclaration:
        properties: dict[str, Any] = {}
        required = []
        for param in self._model_parameters():
            schema = infer_type_schema(self._type_hints.get(param.name, param.annotation))
            schema["description"] = self._param_descriptions.get(
                param.name, f"Parameter {param.name}"
            )
            properties[param.name] = schema
            if param.default is param.empty:
                required.append(param.name)

        parameters: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            parameters["required"] = required
        return FunctionDeclaration(
            name=self.name, description=self.description, parameters=parameters
        )

    def _build_kwargs(self, args: dict[str, Any], tool_context: ToolContext) -> dict[str, Any]:
        accepted = self._signature.parameters
        kwargs = {k: v for k, v in args.items() if k in accepted}
        if _TOOL_CONTEXT_PARAM in accepted:
            kwargs[_TOOL_CONTEXT_PARAM] = tool_context
        return kwargs

    def _missing_mandatory_args(self, kwargs: dict[str, Any]) -> list[str]:
        return [
            param.name
            for param in self._model_parameters()
            if param.default is param.empty and param.name not in kwargs
        ]

    async def run_async(self, *, args: dict[str, Any], tool_context: ToolContext) -> Any:
        kwargs = self._build_kwargs(args, tool_context)
        missing = self._missing_mandatory_args(kwargs)
        if missing:
            missing_str = "\n".join(missing)
            return {
                "error": (
                    f"Invoking `{self.name}()` failed as the following mandatory input "
                    f"parameters are not present:\n{missing_str}\nYou could retry calling "
                    "this tool, but it is IMPORTANT for you to provide all the mandatory "
                    "parameters."
                )
            }

        result = self.func(**kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    async def run_live(
        self,
        *,
        args: dict[str, Any],
        tool_context: ToolContext,
        input_stream: LiveRequestQueue | None = None,
    ) -> AsyncGenerator[Any, None]:
        """Run a streaming tool, yielding each intermediate result."""
        kwargs = self._build_kwargs(args, tool_context)
        live_param = self.live_input_parameter
        if live_param:
            kwargs[live_param] = input_stream
        stream = self.func(**kwargs)
        try:
            async for item in stream:
                yield item
        finally:
            await stream.aclose()


__all__ = ["FunctionTool", "infer_type_schema"]

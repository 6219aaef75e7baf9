"""Comparison of recorded and current LLM requests."""

from typing import Any

from turnflow.models.llm_request import GenerateContentConfig, LlmRequest
from turnflow.types import Content

# Config fields that legitimately differ between a recording and its replay
_IGNORED_CONFIG_FIELDS = ("http_options", "labels")


def to_comparison_dict(request: LlmRequest | dict[str, Any]) -> dict[str, Any]:
    """Normalise a request for comparison.

    Recorded requests come from YAML and may omit defaults, so both sides
    are rebuilt through the same types. ``live_connect_config`` and the
    config's ``http_options`` and ``labels`` are dropped.
    """
    data = request.to_dict() if isinstance(request, LlmRequest) else request
    config = GenerateContentConfig.from_dict(data.get("config") or {}).to_dict()
    for name in _IGNORED_CONFIG_FIELDS:
        config.pop(name, None)
    return {
        "model": data.get("model"),
        "contents": [Content.from_dict(c).to_dict() for c in data.get("contents") or []],
        "config": config,
    }


def requests_match(
    recorded: LlmRequest | dict[str, Any], current: LlmRequest | dict[str, Any]
) -> bool:
    return to_comparison_dict(recorded) == to_comparison_dict(current)


__all__ = ["requests_match", "to_comparison_dict"]

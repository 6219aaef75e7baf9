"""Unified error hierarchy for turnflow.

Every error raised by the orchestration core derives from TurnflowError and
carries a category, so callers can route failures without matching on
concrete classes. Errors raised by the reasoning backend, by tools, or by
plugin hooks are not wrapped: they reach the caller with their original type.
"""

import difflib
import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of turnflow errors."""

    NOT_FOUND = "not_found"  # Session, agent or tool missing
    ALREADY_EXISTS = "already_exists"  # Duplicate session id
    CONFIGURATION = "configuration"  # Malformed wiring, fatal at construction
    VERIFICATION = "verification"  # Replay/record consistency check failed
    LIMIT = "limit"  # Run limits exceeded


class TurnflowError(Exception):
    """Base exception for all turnflow errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.CONFIGURATION,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.category.value.upper()}] {self.message}"


class NotFoundError(TurnflowError):
    """Raised when a required entity does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, category=ErrorCategory.NOT_FOUND, details=details)


class SessionNotFoundError(NotFoundError):
    """Raised when a session cannot be resolved or no longer exists."""

    def __init__(self, app_name: str, user_id: str, session_id: str) -> None:
        super().__init__(
            f"Session not found: {session_id} for user {user_id}",
            details={"app_name": app_name, "user_id": user_id, "session_id": session_id},
        )
        self.app_name = app_name
        self.user_id = user_id
        self.session_id = session_id


class AgentNotFoundError(NotFoundError):
    """Raised when a transfer targets an agent missing from the tree."""

    def __init__(self, agent_name: str, root_agent_name: Optional[str] = None) -> None:
        super().__init__(
            f"Agent {agent_name} not found in the agent tree",
            details={"agent_name": agent_name, "root_agent": root_agent_name},
        )
        self.agent_name = agent_name


class ToolNotFoundError(NotFoundError):
    """Raised when the model calls a tool the agent does not expose."""

    def __init__(self, tool_name: str, available: Optional[list[str]] = None) -> None:
        super().__init__(
            f"Function {tool_name} is not found in the tools_dict",
            details={"tool_name": tool_name, "available": available or []},
        )
        self.tool_name = tool_name


class AlreadyExistsError(TurnflowError):
    """Raised when creating an entity whose id is taken."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, category=ErrorCategory.ALREADY_EXISTS, details=details)


class ConfigurationError(TurnflowError):
    """Raised when plugins, processors or agents are wired incorrectly."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, details=details)


class DuplicatePluginError(ConfigurationError):
    """Raised when two plugins share a name."""

    def __init__(self, plugin_name: str) -> None:
        super().__init__(
            f"Plugin with name '{plugin_name}' already registered.",
            details={"plugin_name": plugin_name},
        )
        self.plugin_name = plugin_name


class AgentTreeError(ConfigurationError):
    """Raised when an agent tree violates naming or ownership rules."""


class ReplayConfigError(ConfigurationError):
    """Raised when replay parameters or recordings are missing or unreadable."""


class VerificationError(TurnflowError):
    """Raised when a consistency check fails.

    The expected and actual values are kept on the error together with a
    unified diff of their JSON renderings.
    """

    def __init__(self, message: str, expected: Any = None, actual: Any = None) -> None:
        self.expected = expected
        self.actual = actual
        self.diff = render_diff(expected, actual)
        full_message = f"{message}\n{self.diff}" if self.diff else message
        super().__init__(
            full_message,
            category=ErrorCategory.VERIFICATION,
            details={"expected": expected, "actual": actual},
        )


class ReplayVerificationError(VerificationError):
    """Raised when a replayed run diverges from its recording."""


class LlmCallsLimitExceededError(TurnflowError):
    """Raised when an invocation exceeds RunConfig.max_llm_calls."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Max number of llm calls limit of `{limit}` exceeded",
            category=ErrorCategory.LIMIT,
            details={"max_llm_calls": limit},
        )
        self.limit = limit


def render_diff(expected: Any, actual: Any) -> str:
    """Render a unified diff between two JSON-serialisable values."""
    if expected is None and actual is None:
        return ""
    expected_lines = json.dumps(expected, indent=2, sort_keys=True, default=str).splitlines()
    actual_lines = json.dumps(actual, indent=2, sort_keys=True, default=str).splitlines()
    return "\n".join(
        difflib.unified_diff(
            expected_lines, actual_lines, fromfile="recorded", tofile="current", lineterm=""
        )
    )


__all__ = [
    "AgentNotFoundError",
    "AgentTreeError",
    "AlreadyExistsError",
    "ConfigurationError",
    "DuplicatePluginError",
    "ErrorCategory",
    "LlmCallsLimitExceededError",
    "NotFoundError",
    "ReplayConfigError",
    "ReplayVerificationError",
    "SessionNotFoundError",
    "ToolNotFoundError",
    "TurnflowError",
    "VerificationError",
    "render_diff",
]

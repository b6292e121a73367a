"""
Error taxonomy for the agent engine.

Gateway errors distinguish the provider failure cause so callers can show a
meaningful message. Cancellation is not a GatewayError: a
cancelled call ends a session as ``stopped`` and never triggers repair.
"""

from typing import Any, Optional


class TaskpilotError(Exception):
    """Base class for all taskpilot errors."""


class GatewayError(TaskpilotError):
    """Base class for model gateway failures."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class AuthError(GatewayError):
    """Missing or rejected provider credential."""


class RateLimitError(GatewayError):
    """Provider rejected the request because of rate limiting."""


class ServerError(GatewayError):
    """Upstream returned a 5xx response."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, provider)
        self.status_code = status_code


class NetworkError(GatewayError):
    """Connection failure or timeout while talking to the provider."""


class CancelledError(TaskpilotError):
    """An in-flight operation was aborted through its cancellation handle."""


class ParseError(TaskpilotError):
    """Model output could not be turned into a structured object."""

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text


class ToolExecutionError(TaskpilotError):
    """A tool invocation failed."""

    def __init__(self, tool_name: str, arguments: dict[str, Any], message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.arguments = arguments


class UserDeclined(TaskpilotError):
    """The user refused to approve a command."""

    def __init__(self, command: str):
        super().__init__(f"Command declined by user: {command}")
        self.command = command


class InvalidTransitionError(TaskpilotError):
    """A session status change is not allowed by the state machine."""


class SessionNotFoundError(TaskpilotError):
    """No session with the given id exists."""


class SessionBusyError(TaskpilotError):
    """The session already has a run in progress."""

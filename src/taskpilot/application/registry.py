"""
Session Registry

Tracks the run handle of every session that is currently executing. A
session can have at most one run in progress.
"""

from typing import Optional

import structlog

from taskpilot.core.domain.cancellation import RunHandle
from taskpilot.core.domain.errors import SessionBusyError

logger = structlog.get_logger()


class SessionRegistry:
    """In-process map from session id to its active RunHandle."""

    def __init__(self):
        self._handles: dict[str, RunHandle] = {}
        self.logger = logger.bind(component="session_registry")

    def acquire(self, session_id: str) -> RunHandle:
        """
        Register a new run for ``session_id``.

        Raises:
            SessionBusyError: If the session already has a run in progress
        """
        if self.is_running(session_id):
            raise SessionBusyError(f"Session {session_id} is already running")
        handle = RunHandle(session_id=session_id)
        self._handles[session_id] = handle
        return handle

    def get(self, session_id: str) -> Optional[RunHandle]:
        return self._handles.get(session_id)

    def is_running(self, session_id: str) -> bool:
        handle = self._handles.get(session_id)
        return handle is not None and not handle.done

    def request_stop(self, session_id: str) -> bool:
        """Flag the session's run to stop; False if nothing is running."""
        handle = self._handles.get(session_id)
        if handle is None or handle.done:
            return False
        handle.request_stop()
        self.logger.info("stop_requested", session_id=session_id)
        return True

    def release(self, session_id: str, handle: Optional[RunHandle] = None) -> None:
        """Forget the run; with ``handle`` given, only if it is still the current one."""
        if handle is not None and self._handles.get(session_id) is not handle:
            return
        self._handles.pop(session_id, None)

    def active_sessions(self) -> list[str]:
        return [sid for sid in self._handles if self.is_running(sid)]

"""
Command approval gate.

Under the ``permission`` execution mode every command waits for an explicit
decision from an ApprovalProvider; under ``autonomous`` commands run
immediately. Every decision is kept in an audit trail.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional

import structlog

from taskpilot.core.domain.cancellation import run_cancellable
from taskpilot.core.domain.errors import UserDeclined
from taskpilot.core.domain.models import Session
from taskpilot.core.interfaces.approval import ApprovalProvider, ExecutionMode


class CommandApprovalGate:
    """
    Decides whether a command may run.

    Args:
        mode: Execution mode (permission or autonomous)
        provider: Source of interactive decisions, required in permission mode
    """

    def __init__(
        self,
        mode: ExecutionMode = ExecutionMode.PERMISSION,
        provider: Optional[ApprovalProvider] = None,
    ):
        self.mode = ExecutionMode(mode)
        self.provider = provider
        self.history: list[dict[str, Any]] = []
        self.logger = structlog.get_logger().bind(component="approval_gate")

    def _record(self, session: Session, command: str, decision: str) -> None:
        self.history.append(
            {
                "timestamp": datetime.now().isoformat(),
                "session_id": session.id,
                "command": command,
                "decision": decision,
                "policy": self.mode.value,
            }
        )

    async def authorize(
        self,
        session: Session,
        command: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Block until ``command`` is approved.

        Raises:
            UserDeclined: The decision was negative, or no provider is
                configured in permission mode
            CancelledError: The session was stopped while waiting
        """
        if self.mode == ExecutionMode.AUTONOMOUS:
            self._record(session, command, "auto_approved")
            return

        if self.provider is None:
            self.logger.error("approval_provider_missing", command=command)
            self._record(session, command, "denied")
            raise UserDeclined(command)

        self.logger.info("approval_requested", session_id=session.id, command=command)
        approved = await run_cancellable(
            self.provider.request_approval(session, command),
            cancel_event,
            "Approval request cancelled",
        )
        self._record(session, command, "approved" if approved else "denied")
        if not approved:
            self.logger.info("command_declined", session_id=session.id, command=command)
            raise UserDeclined(command)

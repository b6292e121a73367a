"""Command approval protocol."""

from enum import Enum
from typing import Protocol

from taskpilot.core.domain.models import Session


class ExecutionMode(str, Enum):
    """Whether commands need interactive approval before running."""

    PERMISSION = "permission"
    AUTONOMOUS = "autonomous"


class ApprovalProvider(Protocol):
    async def request_approval(self, session: Session, command: str) -> bool:
        """Return True to run the command, False to decline it."""
        ...

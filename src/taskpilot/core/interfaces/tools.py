"""
Tool Protocol

Tools are looked up by name in a registry and invoked with decoded
arguments plus a ToolContext describing the session they act for.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from taskpilot.core.domain.models import Session, ToolResult
from taskpilot.core.domain.working_directory import resolve_path
from taskpilot.core.interfaces.workspace import WorkspaceProtocol


@dataclass
class ToolContext:
    """
    Per-invocation context handed to tools.

    Attributes:
        session: Session the tool acts for; ask_user flags it directly
        workspace: Host file system and process execution
        cancel_event: Set when the session run is being stopped
    """

    session: Session
    workspace: WorkspaceProtocol
    cancel_event: Optional[asyncio.Event] = None

    @property
    def file_scoped(self) -> bool:
        """True when writes are restricted to already existing files."""
        return bool(self.session.active_file)

    def resolve(self, path: str) -> str:
        """Resolve ``path`` against the session's working-directory context."""
        return resolve_path(self.workspace.root, self.session.working_directory, path)


class ToolProtocol(Protocol):
    @property
    def name(self) -> str:
        ...

    @property
    def description(self) -> str:
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        ...

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        ...


class ToolDispatcherProtocol(Protocol):
    """Name-keyed tool table."""

    def schemas(self) -> list[dict[str, Any]]:
        ...

    async def execute(
        self, name: str, args: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        ...

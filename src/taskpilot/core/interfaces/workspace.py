"""
Workspace Protocol

Host-side file system and process execution used by tools. Working
directories are tracked per context id (one per session).
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class CommandResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None


@dataclass
class DirectoryEntry:
    name: str
    type: str  # "file" or "directory"
    path: str


class WorkspaceProtocol(Protocol):
    @property
    def root(self) -> str:
        ...

    async def read_file(self, path: str) -> str:
        ...

    async def read_bytes(self, path: str) -> bytes:
        ...

    async def write_file(self, path: str, content: str) -> None:
        ...

    async def read_directory(self, path: str) -> list[DirectoryEntry]:
        ...

    async def path_exists(self, path: str) -> bool:
        ...

    async def execute_command(
        self,
        context_id: str,
        command: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        ...

    def get_working_directory(self, context_id: str) -> str:
        ...

    def set_working_directory(self, context_id: str, path: str) -> None:
        ...

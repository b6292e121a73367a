"""
Local Workspace

File system and shell access rooted at one directory. Each session keeps
its own working directory, keyed by context id, so concurrent sessions do
not see each other's ``cd``. File writes are not locked across sessions.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import structlog

from taskpilot.core.domain.errors import CancelledError
from taskpilot.core.interfaces.workspace import CommandResult, DirectoryEntry


class LocalWorkspace:
    """
    Workspace backed by the local file system and asyncio subprocesses.

    Args:
        root: Workspace root directory
        command_timeout: Seconds before a command is killed; None disables it
    """

    def __init__(self, root: str, command_timeout: Optional[float] = None):
        self._root = str(Path(root).expanduser().resolve())
        self.command_timeout = command_timeout
        self._working_directories: dict[str, str] = {}
        self.logger = structlog.get_logger().bind(component="local_workspace")

    @property
    def root(self) -> str:
        return self._root

    def _absolute(self, path: str) -> str:
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self._root, path))

    async def read_file(self, path: str) -> str:
        async with aiofiles.open(self._absolute(path), "r", encoding="utf-8") as f:
            return await f.read()

    async def read_bytes(self, path: str) -> bytes:
        async with aiofiles.open(self._absolute(path), "rb") as f:
            return await f.read()

    async def write_file(self, path: str, content: str) -> None:
        full_path = self._absolute(path)
        await aiofiles.os.makedirs(os.path.dirname(full_path), exist_ok=True)
        async with aiofiles.open(full_path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)

    async def path_exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(self._absolute(path))

    async def read_directory(self, path: str) -> list[DirectoryEntry]:
        directory = self._absolute(path)
        entries = []
        for name in sorted(await aiofiles.os.listdir(directory)):
            full_path = os.path.join(directory, name)
            kind = "directory" if await aiofiles.os.path.isdir(full_path) else "file"
            relative = os.path.relpath(full_path, self._root).replace(os.sep, "/")
            entries.append(DirectoryEntry(name=name, type=kind, path=relative))
        return entries

    def get_working_directory(self, context_id: str) -> str:
        return self._working_directories.get(context_id, self._root)

    def set_working_directory(self, context_id: str, path: str) -> None:
        self._working_directories[context_id] = self._absolute(path)
        self.logger.debug(
            "working_directory_set",
            context_id=context_id,
            path=self._working_directories[context_id],
        )

    async def execute_command(
        self,
        context_id: str,
        command: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CommandResult:
        """
        Run ``command`` through the shell in the context's working directory.

        Both output streams are captured fully before returning.

        Raises:
            CancelledError: If ``cancel_event`` is set while the command runs;
                the process is killed first.
        """
        cwd = self.get_working_directory(context_id)
        if not os.path.isdir(cwd):
            return CommandResult(
                success=False,
                stderr=f"Working directory does not exist: {cwd}",
            )

        self.logger.info("command_started", context_id=context_id, command=command, cwd=cwd)
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )

        communicate = asyncio.ensure_future(process.communicate())
        waiters = {communicate}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.command_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            communicate.cancel()
            await self._kill(process)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if communicate not in done:
            communicate.cancel()
            await self._kill(process)
            if cancel_waiter is not None and cancel_waiter in done:
                self.logger.info("command_cancelled", context_id=context_id, command=command)
                raise CancelledError(f"Command cancelled: {command}")
            self.logger.warning(
                "command_timeout", command=command, timeout=self.command_timeout
            )
            return CommandResult(
                success=False,
                stderr=f"Command timed out after {self.command_timeout}s",
            )

        stdout, stderr = communicate.result()
        return CommandResult(
            success=process.returncode == 0,
            stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
            exit_code=process.returncode,
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                return
        await process.wait()

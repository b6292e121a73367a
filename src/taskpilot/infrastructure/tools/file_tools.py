# ============================================
# FILE SYSTEM TOOLS
# ============================================

import os
from typing import Any

import structlog

from taskpilot.core.domain.errors import ToolExecutionError
from taskpilot.core.domain.models import ToolResult
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.base import Tool

logger = structlog.get_logger()


class ReadFileTool(Tool):
    """Read a workspace file relative to the session's working directory."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the full text content of a file. Relative paths resolve "
            "against the current working directory."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Path of the file to read",
                },
            },
            "required": ["file_path"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        path = args["file_path"]
        full_path = context.resolve(path)
        if not await context.workspace.path_exists(full_path):
            return ToolResult.fail(f"File not found: {path}", path=full_path)

        try:
            content = await context.workspace.read_file(full_path)
        except UnicodeDecodeError as e:
            raise ToolExecutionError(
                self.name, args, f"Cannot read {path}: not a UTF-8 text file"
            ) from e
        return ToolResult.ok(content, path=full_path, size=len(content))


class WriteFileTool(Tool):
    """
    Create or overwrite a file.

    Writing byte-identical content is a no-op reported with ``skipped=True``.
    In file-scoped runs (the session has an ``active_file``) only existing
    files may be written.
    """

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file, creating parent directories as needed. "
            "Overwrites the file if it exists."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Path of the file to write",
                },
                "content": {
                    "type": "string",
                    "description": "Complete new content of the file",
                },
            },
            "required": ["file_path", "content"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        path = args["file_path"]
        content = args["content"]
        full_path = context.resolve(path)
        workspace = context.workspace
        exists = await workspace.path_exists(full_path)

        if context.file_scoped and not exists:
            return ToolResult.fail(
                self._missing_file_message(path, context), path=full_path
            )

        if exists and await workspace.read_bytes(full_path) == content.encode("utf-8"):
            logger.info("file_write_skipped_identical", path=full_path)
            return ToolResult.ok(
                f"Skipped {path} (identical content)", path=full_path, skipped=True
            )

        await workspace.write_file(full_path, content)
        action = "updated" if exists else "created"
        logger.info("file_written", path=full_path, action=action, size=len(content))
        return ToolResult.ok(
            f"File {action}: {path}", path=full_path, size=len(content), skipped=False
        )

    @staticmethod
    def _missing_file_message(path: str, context: ToolContext) -> str:
        message = (
            f"File '{path}' does not exist. You are restricted to modifying "
            "EXISTING files only."
        )
        active = context.session.active_file
        if active:
            suggestion = active
            if os.path.isabs(active):
                suggestion = os.path.relpath(active, context.workspace.root)
            return f"{message} Did you mean '{suggestion.replace(os.sep, '/')}'?"
        return f"{message} Please verify the path using list_directory first."


class ListDirectoryTool(Tool):
    """List files and subdirectories of a directory."""

    @property
    def name(self) -> str:
        return "list_directory"

    @property
    def description(self) -> str:
        return "List the entries of a directory with their name, type and path."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory to list, defaults to the current directory",
                },
            },
            "required": [],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        path = args.get("path") or "."
        full_path = context.resolve(path)
        if not await context.workspace.path_exists(full_path):
            return ToolResult.fail(f"Directory not found: {path}", path=full_path)

        entries = await context.workspace.read_directory(full_path)
        listing = [
            {"name": e.name, "type": e.type, "path": e.path} for e in entries
        ]
        return ToolResult.ok(listing, path=full_path, count=len(listing))

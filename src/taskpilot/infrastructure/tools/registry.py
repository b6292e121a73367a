"""
Tool Registry

Maps tool names to handlers. Dispatch goes through a single table instead
of branching on tool names, so new tools only need to be registered.
"""

from typing import Any, Iterable, Optional

import structlog

from taskpilot.core.domain.models import ToolResult
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.ask_user_tool import AskUserTool
from taskpilot.infrastructure.tools.base import Tool
from taskpilot.infrastructure.tools.file_tools import (
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from taskpilot.infrastructure.tools.shell_tool import RunCommandTool
from taskpilot.infrastructure.tools.tool_converter import tools_to_openai_format


class ToolRegistry:
    """Registered tools keyed by name."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: dict[str, Tool] = {}
        self.logger = structlog.get_logger().bind(component="tool_registry")
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """Function-calling schemas of all registered tools."""
        return tools_to_openai_format(self._tools.values())

    async def execute(
        self, name: str, args: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        """
        Execute a tool by name.

        Returns:
            The tool's result, or a failed result if the tool is unknown.
        """
        tool = self._tools.get(name)
        if tool is None:
            self.logger.warning("tool_not_found", tool=name)
            return ToolResult.fail(f"Tool not found: {name}")

        self.logger.debug("tool_dispatch", tool=name, session_id=context.session.id)
        return await tool.execute_safe(args, context)


def create_default_registry() -> ToolRegistry:
    """Registry with the five workspace tools."""
    return ToolRegistry(
        [
            ReadFileTool(),
            WriteFileTool(),
            ListDirectoryTool(),
            RunCommandTool(),
            AskUserTool(),
        ]
    )

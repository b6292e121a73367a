# ============================================
# SHELL TOOL
# ============================================

from typing import Any

import structlog

from taskpilot.core.domain.models import ToolResult
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.base import Tool

logger = structlog.get_logger()


class RunCommandTool(Tool):
    """Run a shell command in the session's working directory.

    stdout and stderr are captured completely before the result is returned.
    Approval is handled by the caller before dispatch.
    """

    @property
    def name(self) -> str:
        return "run_command"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command in the current working directory and "
            "return its stdout, stderr and exit code. Use 'cd folder && command' "
            "to run inside a subdirectory."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute",
                },
            },
            "required": ["command"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        command = args["command"].strip()
        if not command:
            return ToolResult.fail("Empty command")

        result = await context.workspace.execute_command(
            context.session.id, command, cancel_event=context.cancel_event
        )
        data = {
            "command": command,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exit_code": result.exit_code,
        }
        if result.success:
            return ToolResult.ok(result.stdout, **data)

        error = result.stderr.strip() or result.stdout.strip()[-2000:]
        if not error:
            error = f"Command failed with exit code {result.exit_code}"
        logger.info("command_failed", command=command, exit_code=result.exit_code)
        return ToolResult.fail(error, **data)

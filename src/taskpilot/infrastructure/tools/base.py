# ============================================
# BASE TOOL INTERFACE
# ============================================

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from taskpilot.core.domain.errors import CancelledError, ToolExecutionError
from taskpilot.core.domain.models import ToolResult
from taskpilot.core.interfaces.tools import ToolContext

logger = structlog.get_logger()

_JSON_TYPES = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


class Tool(ABC):
    """Base class for all tools"""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments object."""

    @abstractmethod
    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        pass

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, Optional[str]]:
        """Check required arguments and primitive types against the schema."""
        schema = self.parameters_schema
        for required in schema.get("required", []):
            if required not in args or args[required] is None:
                return False, f"Missing required parameter: {required}"

        for key, spec in schema.get("properties", {}).items():
            if key not in args or args[key] is None:
                continue
            expected = _JSON_TYPES.get(spec.get("type", ""))
            if expected and not isinstance(args[key], expected):
                return False, f"Parameter '{key}' must be of type {spec['type']}"
        return True, None

    async def execute_safe(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Validate arguments and run ``execute``, turning exceptions into failures.

        Cancellation is never converted: ``asyncio.CancelledError`` and the
        engine's own CancelledError propagate to the caller.
        """
        valid, error = self.validate_args(args)
        if not valid:
            return ToolResult.fail(f"Invalid parameters: {error}", tool=self.name)

        try:
            result = await self.execute(args, context)
        except (asyncio.CancelledError, CancelledError):
            raise
        except ToolExecutionError as e:
            logger.warning(
                "tool_execution_failed",
                tool=e.tool_name,
                arguments=e.arguments,
                error=str(e),
            )
            return ToolResult.fail(str(e), tool=e.tool_name)
        except Exception as e:
            logger.warning("tool_execution_failed", tool=self.name, error=str(e))
            return ToolResult.fail(str(e), tool=self.name, error_type=type(e).__name__)

        if not isinstance(result, ToolResult):
            return ToolResult.fail(
                f"Tool returned invalid type: {type(result).__name__}", tool=self.name
            )
        return result

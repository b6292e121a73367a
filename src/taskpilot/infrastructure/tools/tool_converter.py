"""
Tool Converter - OpenAI function calling format conversion.

Converts registered tools to the wire format of the function calling API
and tool results to history messages.
"""

from typing import Any, Iterable

from taskpilot.core.domain.models import DEFAULT_MAX_FIELD_CHARS, ToolResult
from taskpilot.core.interfaces.tools import ToolProtocol


def tools_to_openai_format(tools: Iterable[ToolProtocol]) -> list[dict[str, Any]]:
    """
    Convert tools to OpenAI function calling format.

    Returns:
        List of ``{"type": "function", "function": {name, description, parameters}}``
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema,
            },
        }
        for tool in tools
    ]


def tool_result_to_message(
    tool_call_id: str,
    tool_name: str,
    result: ToolResult,
    max_output_chars: int = DEFAULT_MAX_FIELD_CHARS,
) -> dict[str, Any]:
    """
    Convert a tool execution result to an OpenAI tool message.

    Large output fields are truncated to ``max_output_chars`` to keep the
    history within the model's context window.

    Returns:
        ``{"role": "tool", "tool_call_id": ..., "name": ..., "content": <json>}``
    """
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "name": tool_name,
        "content": result.to_text(max_output_chars),
    }


def task_result_to_message(
    task_id: str,
    tool_name: str,
    result: ToolResult,
    max_output_chars: int = DEFAULT_MAX_FIELD_CHARS,
) -> dict[str, Any]:
    """History entry for a tool run on behalf of a planned task."""
    return {
        "role": "tool",
        "name": tool_name,
        "task_id": task_id,
        "content": result.to_text(max_output_chars),
    }

"""
LLM Gateway Protocol

Contract between the engine and a chat-completion provider. The gateway
returns a normalized ChatResponse and maps provider failures onto the
GatewayError taxonomy; it never retries on its own.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol


@dataclass
class ToolCall:
    """One function call requested by the model."""

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict[str, Any]:
        """
        Decode the JSON argument string.

        Raises:
            json.JSONDecodeError: If the model produced malformed arguments
        """
        if not self.arguments:
            return {}
        parsed = json.loads(self.arguments)
        if not isinstance(parsed, dict):
            raise json.JSONDecodeError("Tool arguments must be an object", self.arguments, 0)
        return parsed

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class StreamDelta:
    """Cumulative streamed text after the latest chunk."""

    content: str
    reasoning: str = ""


@dataclass
class ChatResponse:
    """
    Normalized assistant turn.

    Attributes:
        content: Natural-language content (may be empty with tool calls)
        tool_calls: Function calls requested by the model
        reasoning: Reasoning text if the provider streams it separately
        total_tokens: Token usage reported by the provider
        model: Model that produced the turn
    """

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    reasoning: str = ""
    total_tokens: int = 0
    model: str = ""

    def to_message(self) -> dict[str, Any]:
        """Render the turn as a history message."""
        message: dict[str, Any] = {"role": "assistant", "content": self.content or None}
        if self.tool_calls:
            message["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return message


StreamCallback = Callable[[StreamDelta], None]


class ModelGatewayProtocol(Protocol):
    """Chat-completion endpoint used by the planner, repair engine and agent."""

    async def chat(
        self,
        history: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        on_stream_delta: Optional[StreamCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        ...

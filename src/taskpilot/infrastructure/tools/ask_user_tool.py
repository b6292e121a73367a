# ============================================
# ASK USER TOOL (first-class)
# ============================================

from typing import Any

from taskpilot.core.domain.models import ToolResult
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.base import Tool


class AskUserTool(Tool):
    """Model-invoked prompt to request missing info from a human.

    The tool does not block. It records the question on the session and
    reports ``awaiting_user_input``; the running loop halts until the
    session is resumed with an answer.
    """

    @property
    def name(self) -> str:
        return "ask_user"

    @property
    def description(self) -> str:
        return (
            "Ask the user a clarifying question when information required to "
            "continue is missing. Execution pauses until the user answers."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "One clear question"},
            },
            "required": ["question"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        question = args["question"].strip()
        context.session.pending_question = question
        return ToolResult.ok(
            "Question sent to user. Waiting for response.",
            question=question,
            awaiting_user_input=True,
        )

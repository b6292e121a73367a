"""
Unit Tests for AutonomousAgent

The gateway is an AsyncMock returning scripted assistant turns; tools run
against a real LocalWorkspace in a temporary directory.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.domain.autonomous_agent import AutonomousAgent
from taskpilot.core.domain.cancellation import RunHandle
from taskpilot.core.domain.errors import ServerError
from taskpilot.core.domain.models import SessionMode, SessionStatus, TaskStatus, TaskType
from taskpilot.core.interfaces.approval import ExecutionMode
from taskpilot.core.interfaces.llm import ChatResponse, ToolCall


def _call(call_id, name, **args):
    return ToolCall(id=call_id, name=name, arguments=json.dumps(args))


def _turn(*calls):
    return ChatResponse(tool_calls=list(calls))


def _tool_messages(session):
    return [m for m in session.history if m["role"] == "tool"]


@pytest.fixture
def agent_factory(mock_gateway, tool_registry, workspace, autonomous_gate):
    def build(responses, **kwargs):
        mock_gateway.chat = AsyncMock(side_effect=responses)
        kwargs.setdefault("approval_gate", autonomous_gate)
        return AutonomousAgent(mock_gateway, tool_registry, workspace, **kwargs)

    return build


class TestCreateSession:
    def test_history_starts_with_system_prompt_and_goal(self):
        session = AutonomousAgent.create_session("Fix the bug")
        assert session.mode == SessionMode.AUTONOMOUS
        assert session.plan == "Autonomous execution"
        assert session.history[0]["role"] == "system"
        assert session.history[0]["content"].endswith("[Context] Current working directory: .")
        assert session.history[1] == {"role": "user", "content": "Fix the bug"}

    def test_file_scope_in_prompt(self):
        session = AutonomousAgent.create_session("Fix it", active_file="src/app.py")
        assert session.active_file == "src/app.py"
        assert "src/app.py" in session.history[0]["content"]


class TestAgentLoop:
    """Tests for the think/act loop."""

    @pytest.mark.asyncio
    async def test_tool_call_then_final_answer(self, agent_factory, mock_gateway, tool_registry, tmp_path):
        agent = agent_factory(
            [
                _turn(_call("c1", "write_file", file_path="notes.txt", content="hello")),
                ChatResponse(content="Created notes.txt"),
            ]
        )
        session = agent.create_session("Write notes")

        await agent.run(session)

        assert session.status == SessionStatus.FINISHED
        assert (tmp_path / "notes.txt").read_text(encoding="utf-8") == "hello"
        assert len(session.tasks) == 1
        assert session.tasks[0].type == TaskType.FILE_WRITE
        assert session.tasks[0].status == TaskStatus.FINISHED
        assert [m["role"] for m in session.history] == ["system", "user", "assistant", "tool", "assistant"]
        assert session.history[3]["tool_call_id"] == "c1"
        assert session.history[-1]["content"] == "Created notes.txt"
        assert mock_gateway.chat.call_args.kwargs["tools"] == tool_registry.schemas()

    @pytest.mark.asyncio
    async def test_empty_turn_is_error(self, agent_factory):
        agent = agent_factory([ChatResponse(content="  ")])
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.status == SessionStatus.ERROR

    @pytest.mark.asyncio
    async def test_gateway_error_ends_in_error(self, agent_factory):
        agent = agent_factory([ServerError("upstream 503", status_code=503)])
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.status == SessionStatus.ERROR
        assert session.thoughts == "upstream 503"

    @pytest.mark.asyncio
    async def test_invalid_arguments_reported_to_model(self, agent_factory):
        bad = ToolCall(id="c1", name="read_file", arguments="{not json")
        agent = agent_factory([_turn(bad), ChatResponse(content="Giving up")])
        session = agent.create_session("goal")

        await agent.run(session)

        tool_message = _tool_messages(session)[0]
        assert "Invalid JSON arguments" in json.loads(tool_message["content"])["error"]
        assert session.tasks == []
        assert session.status == SessionStatus.FINISHED

    @pytest.mark.asyncio
    async def test_failed_tool_is_fed_back(self, agent_factory):
        agent = agent_factory(
            [
                _turn(_call("c1", "read_file", file_path="missing.txt")),
                ChatResponse(content="The file does not exist"),
            ]
        )
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.tasks[0].status == TaskStatus.ERROR
        assert "File not found" in session.tasks[0].error
        assert session.status == SessionStatus.FINISHED

    @pytest.mark.asyncio
    async def test_working_directory_note_follows_tool_messages(self, agent_factory):
        agent = agent_factory(
            [
                _turn(
                    _call("c1", "run_command", command="mkdir web && cd web"),
                    _call("c2", "list_directory", path="."),
                ),
                ChatResponse(content="Done"),
            ]
        )
        session = agent.create_session("goal")

        await agent.run(session)

        roles = [m["role"] for m in session.history]
        assert roles[2:6] == ["assistant", "tool", "tool", "system"]
        assert session.history[5]["content"] == "[Context] Current working directory: web"
        assert session.working_directory == "web"

    @pytest.mark.asyncio
    async def test_step_ceiling(self, agent_factory):
        agent = agent_factory(
            [_turn(_call("c1", "list_directory")), _turn(_call("c2", "list_directory"))],
            max_steps=1,
        )
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.status == SessionStatus.MAX_STEPS_REACHED
        assert session.step_count == 1


class TestAgentInterruption:
    """Tests for questions, declines and stop requests."""

    @pytest.mark.asyncio
    async def test_ask_user_skips_remaining_calls(self, agent_factory):
        agent = agent_factory(
            [_turn(_call("c1", "ask_user", question="Which port?"), _call("c2", "run_command", command="echo hi"))]
        )
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.status == SessionStatus.AWAITING_USER_INPUT
        assert session.pending_question == "Which port?"
        messages = _tool_messages(session)
        assert [m["tool_call_id"] for m in messages] == ["c1", "c2"]
        assert json.loads(messages[1]["content"])["error"].startswith("Skipped")
        assert session.tasks[0].status == TaskStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_declined_command_stops(self, agent_factory):
        provider = MagicMock()
        provider.request_approval = AsyncMock(return_value=False)
        gate = CommandApprovalGate(ExecutionMode.PERMISSION, provider)
        agent = agent_factory([_turn(_call("c1", "run_command", command="rm -rf /"))], approval_gate=gate)
        session = agent.create_session("goal")

        await agent.run(session)

        assert session.status == SessionStatus.STOPPED
        assert session.tasks[0].status == TaskStatus.CANCELLED
        assert len(_tool_messages(session)) == 1

    @pytest.mark.asyncio
    async def test_stop_before_first_step(self, agent_factory, mock_gateway):
        agent = agent_factory([ChatResponse(content="never")])
        session = agent.create_session("goal")
        handle = RunHandle(session_id=session.id)
        handle.request_stop()

        await agent.run(session, handle)

        assert session.status == SessionStatus.STOPPED
        mock_gateway.chat.assert_not_awaited()

"""Unit tests for RunCommandTool and LocalWorkspace command execution."""

import asyncio

import pytest

from taskpilot.core.domain.errors import CancelledError
from taskpilot.core.domain.models import Session
from taskpilot.core.interfaces.tools import ToolContext
from taskpilot.infrastructure.tools.shell_tool import RunCommandTool
from taskpilot.infrastructure.workspace.local_workspace import LocalWorkspace


@pytest.fixture
def context(workspace):
    return ToolContext(session=Session(goal="g"), workspace=workspace)


class TestRunCommandTool:
    """Tests for shell command execution."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self, context):
        result = await RunCommandTool().execute({"command": "echo hello"}, context)

        assert result.success
        assert result.output.strip() == "hello"
        assert result.data["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_failure_reports_stderr(self, context):
        result = await RunCommandTool().execute({"command": "echo broken >&2; exit 2"}, context)

        assert not result.success
        assert result.error == "broken"
        assert result.data["exit_code"] == 2

    @pytest.mark.asyncio
    async def test_failure_without_output(self, context):
        result = await RunCommandTool().execute({"command": "exit 5"}, context)
        assert result.error == "Command failed with exit code 5"

    @pytest.mark.asyncio
    async def test_empty_command(self, context):
        result = await RunCommandTool().execute({"command": "   "}, context)
        assert not result.success
        assert result.error == "Empty command"

    @pytest.mark.asyncio
    async def test_runs_in_session_working_directory(self, context, workspace, tmp_path):
        (tmp_path / "sub").mkdir()
        workspace.set_working_directory(context.session.id, "sub")

        result = await RunCommandTool().execute({"command": "pwd"}, context)

        assert result.output.strip().endswith("sub")

    @pytest.mark.asyncio
    async def test_missing_argument_via_execute_safe(self, context):
        result = await RunCommandTool().execute_safe({}, context)
        assert not result.success
        assert result.error == "Invalid parameters: Missing required parameter: command"


class TestLocalWorkspaceCommands:
    """Tests for timeouts and cancellation of subprocesses."""

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        workspace = LocalWorkspace(str(tmp_path), command_timeout=0.2)

        result = await workspace.execute_command("s1", "sleep 5")

        assert not result.success
        assert "timed out" in result.stderr

    @pytest.mark.asyncio
    async def test_cancel_event_kills_process(self, workspace):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, event.set)

        with pytest.raises(CancelledError):
            await workspace.execute_command("s1", "sleep 5", cancel_event=event)

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, workspace):
        workspace.set_working_directory("s1", "does/not/exist")

        result = await workspace.execute_command("s1", "echo hi")

        assert not result.success
        assert "does not exist" in result.stderr

    def test_working_directories_are_per_context(self, workspace):
        workspace.set_working_directory("a", "one")
        assert workspace.get_working_directory("a").endswith("one")
        assert workspace.get_working_directory("b") == workspace.root

"""Shared fixtures for taskpilot unit tests."""

from unittest.mock import AsyncMock

import pytest

from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.domain.models import Session, SessionStatus, Task, TaskType
from taskpilot.core.interfaces.approval import ExecutionMode
from taskpilot.infrastructure.tools.registry import create_default_registry
from taskpilot.infrastructure.workspace.local_workspace import LocalWorkspace


@pytest.fixture
def workspace(tmp_path):
    """LocalWorkspace rooted at a temporary directory."""
    return LocalWorkspace(str(tmp_path))


@pytest.fixture
def tool_registry():
    """Registry with the five default tools."""
    return create_default_registry()


@pytest.fixture
def autonomous_gate():
    """Approval gate that approves every command."""
    return CommandApprovalGate(ExecutionMode.AUTONOMOUS)


@pytest.fixture
def mock_gateway():
    """Mock ModelGatewayProtocol."""
    return AsyncMock()


@pytest.fixture
def plan_session():
    """Session with three pending tasks, awaiting approval."""
    session = Session(goal="Build the thing", plan="Do it in three steps")
    session.tasks = [
        Task(description="Write readme", type=TaskType.FILE_WRITE, path="README.md", content="# Hi\n"),
        Task(description="Run build", type=TaskType.COMMAND, command="echo build"),
        Task(description="Report", type=TaskType.SUMMARY, content="All done"),
    ]
    session.status = SessionStatus.AWAITING_APPROVAL
    return session

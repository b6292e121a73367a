"""Unit tests for the taskpilot CLI."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from taskpilot import __version__
from taskpilot.api.cli.main import app
from taskpilot.core.domain.models import Session, SessionStatus, Task, TaskType
from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore

REPO_CONFIGS = Path(__file__).resolve().parents[3] / "configs"

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    configs = tmp_path / "configs"
    configs.mkdir()
    (configs / "dev.yaml").write_text(
        "\n".join(
            [
                f"workspace_root: '{tmp_path}'",
                f"sessions_dir: '{tmp_path / 'sessions'}'",
                f"llm_config_path: '{REPO_CONFIGS / 'llm_config.yaml'}'",
                "execution_mode: autonomous",
            ]
        ),
        encoding="utf-8",
    )
    return configs


@pytest.fixture
def saved_session(tmp_path):
    session = Session(
        id="abc123",
        goal="Deploy",
        status=SessionStatus.AWAITING_APPROVAL,
        tasks=[Task(description="Build", type=TaskType.COMMAND, command="make")],
    )
    asyncio.run(FileSessionStore(str(tmp_path / "sessions")).save(session))
    return session


class TestCliBasics:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("plan", "run", "answer", "repair", "agent", "sessions"):
            assert command in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_profile(self, tmp_path):
        result = runner.invoke(app, ["--config-dir", str(tmp_path), "sessions", "list"])
        assert result.exit_code == 1
        assert "Profile not found" in result.output


class TestSessionsCommands:
    """Tests for inspecting persisted sessions."""

    def test_list(self, config_dir, saved_session):
        result = runner.invoke(app, ["--config-dir", str(config_dir), "sessions", "list"])
        assert result.exit_code == 0
        assert "Deploy" in result.output

    def test_show_json(self, config_dir, saved_session):
        result = runner.invoke(
            app, ["--config-dir", str(config_dir), "sessions", "show", "abc123", "--json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["goal"] == "Deploy"
        assert data["status"] == "awaiting_approval"
        assert data["tasks"][0]["command"] == "make"

    def test_show_missing(self, config_dir):
        result = runner.invoke(app, ["--config-dir", str(config_dir), "sessions", "show", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestRunCommands:
    """Tests for plan/run commands with a stubbed orchestrator."""

    def test_plan_prints_next_step(self, config_dir):
        session = Session(id="plan42", goal="Deploy", status=SessionStatus.AWAITING_APPROVAL)
        orchestrator = MagicMock()
        orchestrator.create_plan = AsyncMock(return_value=session)
        orchestrator.request_stop_all.return_value = []

        with patch("taskpilot.api.cli.commands.plan.create_orchestrator", return_value=orchestrator):
            result = runner.invoke(app, ["--config-dir", str(config_dir), "plan", "Deploy"])

        assert result.exit_code == 0
        assert "taskpilot run plan42" in result.output
        assert orchestrator.create_plan.await_args.args == ("Deploy",)

    def test_run_unknown_session(self, config_dir):
        result = runner.invoke(app, ["--config-dir", str(config_dir), "run", "missing"])
        assert result.exit_code == 1
        assert "Session not found" in result.output

    def test_run_finishes_session(self, config_dir, saved_session, tmp_path):
        saved_session.tasks = [Task(description="Report", type=TaskType.SUMMARY, content="Shipped")]
        asyncio.run(FileSessionStore(str(tmp_path / "sessions")).save(saved_session))

        result = runner.invoke(app, ["--config-dir", str(config_dir), "run", "abc123"])

        assert result.exit_code == 0
        assert "Session finished" in result.output
        assert "Shipped" in result.output

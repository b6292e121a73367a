"""Unit tests for the repair engine and repair prompt."""

import json
from unittest.mock import AsyncMock

import pytest

from taskpilot.core.domain.errors import CancelledError, NetworkError, ParseError
from taskpilot.core.domain.models import Session, Task, TaskStatus, TaskType
from taskpilot.core.domain.repair import RepairBudget, RepairEngine, failure_signature
from taskpilot.core.interfaces.llm import ChatResponse
from taskpilot.core.prompts.repair_prompts import build_repair_prompt


def _failed_session():
    failed = Task(
        description="Install deps",
        type=TaskType.COMMAND,
        command="npm install",
        status=TaskStatus.ERROR,
        error="ENOENT: package.json not found",
    )
    after = Task(description="Build", type=TaskType.COMMAND, command="npm run build")
    session = Session(goal="Build app", plan="Install then build", tasks=[failed, after])
    return session, failed


def _tasks_response(thoughts="Need package.json", count=1):
    return ChatResponse(
        content=json.dumps(
            {
                "thoughts": thoughts,
                "tasks": [
                    {"description": f"Fix {i}", "type": "command", "command": f"fix {i}"}
                    for i in range(count)
                ],
            }
        )
    )


class TestFailureSignature:
    def test_format(self):
        _, failed = _failed_session()
        assert failure_signature(failed) == "command|npm install||ENOENT: package.json not found"


class TestRepairBudget:
    """Tests for the per-run attempt counter."""

    def test_resets_when_inserted_tasks_finish(self):
        budget = RepairBudget(max_attempts=2, attempts=2)
        a = Task(description="a", type=TaskType.SUMMARY)
        b = Task(description="b", type=TaskType.SUMMARY)
        budget.track([a, b])
        assert budget.exhausted

        budget.record_success(a.id)
        assert budget.attempts == 2
        budget.record_success(b.id)
        assert budget.attempts == 0
        assert not budget.exhausted

    def test_unrelated_success_does_not_reset(self):
        budget = RepairBudget(max_attempts=3, attempts=1)
        budget.track([Task(description="a", type=TaskType.SUMMARY)])
        budget.record_success("other")
        assert budget.attempts == 1


class TestRepairEngineAttempt:
    """Tests for a single repair request."""

    @pytest.mark.asyncio
    async def test_inserts_tasks_after_failed_task(self, mock_gateway):
        session, failed = _failed_session()
        session.thoughts = "Initial"
        mock_gateway.chat = AsyncMock(return_value=_tasks_response(count=2))
        engine = RepairEngine(mock_gateway)

        new_tasks = await engine.attempt(session, failed)

        assert [t.description for t in session.tasks] == ["Install deps", "Fix 0", "Fix 1", "Build"]
        assert failed.status == TaskStatus.REPAIRED
        assert failed.error == "ENOENT: package.json not found (Repaired)"
        assert all(t.status == TaskStatus.PENDING for t in new_tasks)
        assert session.thoughts == "[REPAIR] Need package.json\n\nInitial"

    @pytest.mark.asyncio
    async def test_annotation_without_model_thoughts(self, mock_gateway):
        session, failed = _failed_session()
        session.thoughts = "orig"
        mock_gateway.chat = AsyncMock(
            return_value=ChatResponse(
                content='{"tasks": [{"description": "Init", "type": "command", "command": "npm init -y"}]}'
            )
        )

        await RepairEngine(mock_gateway).attempt(session, failed)

        assert session.thoughts == "[REPAIR] Fixing failed task: Install deps\n\norig"

    @pytest.mark.asyncio
    async def test_request_is_single_user_message(self, mock_gateway):
        session, failed = _failed_session()
        mock_gateway.chat = AsyncMock(return_value=_tasks_response())
        await RepairEngine(mock_gateway).attempt(session, failed)

        messages = mock_gateway.chat.call_args.args[0]
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert "npm install" in messages[0]["content"]

    @pytest.mark.asyncio
    async def test_empty_task_list_is_parse_error(self, mock_gateway):
        session, failed = _failed_session()
        mock_gateway.chat = AsyncMock(return_value=ChatResponse(content='{"tasks": []}'))

        with pytest.raises(ParseError):
            await RepairEngine(mock_gateway).attempt(session, failed)
        assert failed.status == TaskStatus.ERROR
        assert len(session.tasks) == 2


class TestRepairEngineBounded:
    """Tests for bounded automatic repair."""

    @pytest.mark.asyncio
    async def test_failed_calls_count_as_attempts(self, mock_gateway):
        session, failed = _failed_session()
        mock_gateway.chat = AsyncMock(
            side_effect=[NetworkError("connection reset"), _tasks_response()]
        )
        engine = RepairEngine(mock_gateway, max_auto_repairs=3)
        budget = engine.new_budget()

        assert await engine.repair(session, failed, budget=budget)
        assert budget.attempts == 2
        assert budget.pending_ids == {session.tasks[1].id}
        assert budget.signatures == ["command|npm install||ENOENT: package.json not found"]

    @pytest.mark.asyncio
    async def test_gives_up_when_exhausted(self, mock_gateway):
        session, failed = _failed_session()
        mock_gateway.chat = AsyncMock(return_value=ChatResponse(content="no json here"))
        engine = RepairEngine(mock_gateway, max_auto_repairs=2)

        assert not await engine.repair(session, failed)
        assert mock_gateway.chat.await_count == 2
        assert failed.status == TaskStatus.ERROR

    @pytest.mark.asyncio
    async def test_zero_budget_never_calls_model(self, mock_gateway):
        session, failed = _failed_session()
        engine = RepairEngine(mock_gateway, max_auto_repairs=0)

        assert not await engine.repair(session, failed)
        mock_gateway.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, mock_gateway):
        session, failed = _failed_session()
        mock_gateway.chat = AsyncMock(side_effect=CancelledError("stopped"))

        with pytest.raises(CancelledError):
            await RepairEngine(mock_gateway).repair(session, failed)


class TestRepairPrompt:
    """Tests for the remediation prompt contents."""

    def test_contains_context(self):
        session, failed = _failed_session()
        prompt = build_repair_prompt(session, failed)
        assert 'ORIGINAL GOAL: "Build app"' in prompt
        assert "- Command: npm install" in prompt
        assert '"ENOENT: package.json not found"' in prompt
        assert "- Build" in prompt
        assert "PREVIOUS FAILURES" not in prompt

    def test_lists_previous_failures(self):
        session, failed = _failed_session()
        prompt = build_repair_prompt(session, failed, ["command|npm ci||boom"])
        assert "PREVIOUS FAILURES IN THIS RUN" in prompt
        assert "- command|npm ci||boom" in prompt

    def test_no_remaining_tasks(self):
        session, failed = _failed_session()
        session.tasks = [failed]
        assert "- (none)" in build_repair_prompt(session, failed)

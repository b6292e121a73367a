"""
Task Executor

Drives an approved plan to completion: picks the first pending task, runs it
through the tool registry, records the outcome and hands failures to the
repair engine. Execution is strictly sequential and stops as soon as a stop
request is observed.
"""

from typing import Any, Awaitable, Callable, Optional

import structlog

from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.domain.cancellation import RunHandle
from taskpilot.core.domain.errors import CancelledError, UserDeclined
from taskpilot.core.domain.models import (
    DEFAULT_MAX_FIELD_CHARS,
    Session,
    SessionStatus,
    Task,
    TaskStatus,
    TaskType,
    ToolResult,
)
from taskpilot.core.domain.repair import RepairEngine
from taskpilot.core.domain.state_machine import (
    DEFAULT_MAX_STEPS,
    SessionStateMachine,
    is_terminal,
)
from taskpilot.core.domain.working_directory import next_working_directory, to_logical
from taskpilot.core.interfaces.tools import ToolContext, ToolDispatcherProtocol
from taskpilot.core.interfaces.workspace import WorkspaceProtocol
from taskpilot.infrastructure.tools.tool_converter import task_result_to_message

logger = structlog.get_logger()

SessionCallback = Callable[[Session], Awaitable[None]]

# Task type -> tool that performs it
_TOOL_FOR_TYPE = {
    TaskType.FILE_WRITE: "write_file",
    TaskType.COMMAND: "run_command",
    TaskType.READ: "read_file",
    TaskType.LIST: "list_directory",
    TaskType.ASK_USER: "ask_user",
}


def _tool_arguments(task: Task) -> dict[str, Any]:
    if task.type == TaskType.FILE_WRITE:
        return {"file_path": task.path or "", "content": task.content or ""}
    if task.type == TaskType.COMMAND:
        return {"command": task.command or ""}
    if task.type == TaskType.READ:
        return {"file_path": task.path or ""}
    if task.type == TaskType.LIST:
        return {"path": task.path or "."}
    if task.type == TaskType.ASK_USER:
        return {"question": task.content or task.description}
    return {}


class TaskExecutor:
    """
    Runs the tasks of a plan-mode session.

    Args:
        tools: Tool registry used to perform tasks
        workspace: Workspace the tools act on
        approval_gate: Approval policy for command tasks
        repair_engine: Engine consulted when a task fails; None disables repair
        max_steps: Step ceiling per run
        on_update: Awaited after every session mutation (persistence hook)
        max_output_chars: Truncation limit for tool output written to history
    """

    def __init__(
        self,
        tools: ToolDispatcherProtocol,
        workspace: WorkspaceProtocol,
        approval_gate: CommandApprovalGate,
        repair_engine: Optional[RepairEngine] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        on_update: Optional[SessionCallback] = None,
        max_output_chars: int = DEFAULT_MAX_FIELD_CHARS,
    ):
        self.tools = tools
        self.workspace = workspace
        self.approval_gate = approval_gate
        self.repair_engine = repair_engine
        self.max_steps = max_steps
        self.on_update = on_update
        self.max_output_chars = max_output_chars
        self.logger = structlog.get_logger().bind(component="task_executor")

    async def _notify(self, session: Session) -> None:
        session.touch()
        if self.on_update is not None:
            await self.on_update(session)

    async def run(self, session: Session, handle: Optional[RunHandle] = None) -> Session:
        """
        Execute pending tasks until the plan completes, fails or is stopped.

        Returns:
            The session in its final status for this run: finished, error,
            stopped, max_steps_reached or awaiting_user_input.
        """
        handle = handle or RunHandle(session_id=session.id)
        machine = SessionStateMachine(session, self.max_steps)
        machine.transition(SessionStatus.RUNNING)
        machine.reset_steps()
        self.workspace.set_working_directory(session.id, session.working_directory)
        budget = self.repair_engine.new_budget() if self.repair_engine else None

        self.logger.info(
            "session_started", session_id=session.id, tasks=len(session.tasks)
        )
        await self._notify(session)

        current: Optional[Task] = None
        try:
            while True:
                if handle.stop_requested:
                    machine.stop()
                    break

                current = session.next_runnable_task()
                if current is None:
                    break
                if not machine.consume_step():
                    break

                current.status = TaskStatus.ACTIVE
                current.error = None
                self.logger.info(
                    "task_started",
                    session_id=session.id,
                    task_id=current.id,
                    type=current.type.value,
                )
                await self._notify(session)

                try:
                    result = await self._dispatch(session, current, handle)
                except UserDeclined as e:
                    current.status = TaskStatus.CANCELLED
                    current.error = str(e)
                    machine.stop()
                    await self._notify(session)
                    break

                if result.data.get("awaiting_user_input"):
                    machine.transition(SessionStatus.AWAITING_USER_INPUT)
                    self.logger.info(
                        "awaiting_user_input",
                        session_id=session.id,
                        question=session.pending_question,
                    )
                    await self._notify(session)
                    return session

                if result.success:
                    current.status = TaskStatus.FINISHED
                    if budget is not None:
                        budget.record_success(current.id)
                    self.logger.info(
                        "task_finished", session_id=session.id, task_id=current.id
                    )
                    await self._notify(session)
                    continue

                current.status = TaskStatus.ERROR
                current.error = result.error or "Unknown error"
                self.logger.warning(
                    "task_failed",
                    session_id=session.id,
                    task_id=current.id,
                    error=current.error[:200],
                )
                await self._notify(session)

                if handle.stop_requested:
                    machine.stop()
                    break
                if self.repair_engine is None or budget is None:
                    break
                repaired = await self.repair_engine.repair(
                    session, current, handle.cancel_event, budget
                )
                await self._notify(session)
                if not repaired:
                    break
        except CancelledError:
            if current is not None and current.status == TaskStatus.ACTIVE:
                current.status = TaskStatus.CANCELLED
            machine.stop()
            self.logger.info("session_cancelled", session_id=session.id)

        if not is_terminal(session.status):
            if session.all_tasks_completed():
                machine.transition(SessionStatus.FINISHED)
            else:
                machine.transition(SessionStatus.ERROR)

        self.logger.info(
            "session_completed",
            session_id=session.id,
            status=session.status.value,
            steps=session.step_count,
        )
        await self._notify(session)
        return session

    async def _dispatch(
        self, session: Session, task: Task, handle: RunHandle
    ) -> ToolResult:
        if task.type == TaskType.SUMMARY:
            text = task.content or task.description
            session.history.append({"role": "assistant", "content": text})
            return ToolResult.ok(text)

        tool_name = _TOOL_FOR_TYPE[task.type]
        if task.type == TaskType.COMMAND:
            await self.approval_gate.authorize(
                session, task.command or "", handle.cancel_event
            )

        context = ToolContext(
            session=session, workspace=self.workspace, cancel_event=handle.cancel_event
        )
        result = await self.tools.execute(tool_name, _tool_arguments(task), context)
        session.history.append(
            task_result_to_message(task.id, tool_name, result, self.max_output_chars)
        )

        if task.type == TaskType.COMMAND and result.success:
            sync_working_directory(session, self.workspace, task.command or "")
        return result


def sync_working_directory(
    session: Session, workspace: WorkspaceProtocol, command: str
) -> Optional[str]:
    """
    Apply the directory change implied by a successful ``command``.

    Returns:
        The new logical working directory, or None if it did not change.
        Targets outside the workspace root are ignored.
    """
    target = next_working_directory(session.working_directory, command)
    if target is None:
        return None
    logical = to_logical(workspace.root, target)
    if logical is None:
        logger.warning(
            "working_directory_outside_workspace",
            session_id=session.id,
            directory=target,
        )
        return None
    session.working_directory = logical
    workspace.set_working_directory(session.id, logical)
    logger.info("working_directory_updated", session_id=session.id, directory=logical)
    return logical

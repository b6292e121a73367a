"""
Autonomous Agent - function-calling loop without an upfront plan.

Each step sends the history plus the tool schemas to the model:
1. If the turn carries tool calls, they run in order and their results are
   appended to the history, then the loop continues
2. If the turn carries only content, that content is the final answer
3. An empty turn ends the session in error

Every tool call is also recorded as a Task so the session stays inspectable
the same way as a planned one.
"""

import json
from typing import Any, Optional

import structlog

from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.domain.cancellation import RunHandle
from taskpilot.core.domain.errors import CancelledError, GatewayError, UserDeclined
from taskpilot.core.domain.executor import SessionCallback, sync_working_directory
from taskpilot.core.domain.models import (
    DEFAULT_MAX_FIELD_CHARS,
    DEFAULT_WORKING_DIRECTORY,
    Session,
    SessionMode,
    SessionStatus,
    Task,
    TaskStatus,
    TaskType,
    ToolResult,
)
from taskpilot.core.domain.state_machine import DEFAULT_MAX_STEPS, SessionStateMachine
from taskpilot.core.interfaces.llm import ModelGatewayProtocol, ToolCall
from taskpilot.core.interfaces.tools import ToolContext, ToolDispatcherProtocol
from taskpilot.core.interfaces.workspace import WorkspaceProtocol
from taskpilot.core.prompts.autonomous_prompts import build_autonomous_system_prompt
from taskpilot.infrastructure.tools.tool_converter import tool_result_to_message

_TYPE_FOR_TOOL = {
    "write_file": TaskType.FILE_WRITE,
    "run_command": TaskType.COMMAND,
    "read_file": TaskType.READ,
    "list_directory": TaskType.LIST,
    "ask_user": TaskType.ASK_USER,
}


class AutonomousAgent:
    """
    Model-driven tool loop.

    Args:
        gateway: Model gateway called in tools mode
        tools: Tool registry exposed to the model
        workspace: Workspace the tools act on
        approval_gate: Approval policy for run_command
        max_steps: Model turns allowed per run
        on_update: Awaited after every session mutation
        max_output_chars: Truncation limit for tool output written to history
    """

    def __init__(
        self,
        gateway: ModelGatewayProtocol,
        tools: ToolDispatcherProtocol,
        workspace: WorkspaceProtocol,
        approval_gate: CommandApprovalGate,
        max_steps: int = DEFAULT_MAX_STEPS,
        on_update: Optional[SessionCallback] = None,
        max_output_chars: int = DEFAULT_MAX_FIELD_CHARS,
    ):
        self.gateway = gateway
        self.tools = tools
        self.workspace = workspace
        self.approval_gate = approval_gate
        self.max_steps = max_steps
        self.on_update = on_update
        self.max_output_chars = max_output_chars
        self.logger = structlog.get_logger().bind(component="autonomous_agent")

    @staticmethod
    def create_session(
        goal: str,
        active_file: Optional[str] = None,
        working_directory: str = DEFAULT_WORKING_DIRECTORY,
    ) -> Session:
        """New autonomous session whose history starts with the system prompt."""
        session = Session(
            goal=goal,
            mode=SessionMode.AUTONOMOUS,
            active_file=active_file,
            working_directory=working_directory,
            plan="Autonomous execution",
        )
        session.history = [
            {
                "role": "system",
                "content": build_autonomous_system_prompt(working_directory, active_file),
            },
            {"role": "user", "content": goal},
        ]
        return session

    async def _notify(self, session: Session) -> None:
        session.touch()
        if self.on_update is not None:
            await self.on_update(session)

    async def run(self, session: Session, handle: Optional[RunHandle] = None) -> Session:
        """
        Run the loop until the model answers, asks the user, fails or is stopped.

        Returns:
            The session in finished, error, stopped, max_steps_reached or
            awaiting_user_input.
        """
        handle = handle or RunHandle(session_id=session.id)
        machine = SessionStateMachine(session, self.max_steps)
        machine.reset_steps()
        self.workspace.set_working_directory(session.id, session.working_directory)
        self.logger.info("agent_started", session_id=session.id, goal=session.goal[:100])

        try:
            while True:
                if handle.stop_requested:
                    machine.stop()
                    break

                machine.transition(SessionStatus.THINKING)
                if not machine.consume_step():
                    break
                await self._notify(session)

                response = await self.gateway.chat(
                    session.history,
                    tools=self.tools.schemas(),
                    cancel_event=handle.cancel_event,
                )
                if response.reasoning:
                    session.thoughts = response.reasoning

                if response.tool_calls:
                    session.history.append(response.to_message())
                    machine.transition(SessionStatus.EXECUTING)
                    await self._notify(session)
                    await self._execute_tool_calls(session, response.tool_calls, handle, machine)
                    if session.status != SessionStatus.EXECUTING:
                        break
                    continue

                if response.content.strip():
                    session.history.append({"role": "assistant", "content": response.content})
                    session.thoughts = response.content
                    machine.transition(SessionStatus.FINISHED)
                else:
                    session.thoughts = "Model returned neither content nor tool calls"
                    machine.transition(SessionStatus.ERROR)
                break
        except GatewayError as e:
            session.thoughts = str(e)
            self.logger.error(
                "agent_model_call_failed",
                session_id=session.id,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            machine.transition(SessionStatus.ERROR)
        except CancelledError:
            machine.stop()
            self.logger.info("session_cancelled", session_id=session.id)

        self.logger.info(
            "agent_completed",
            session_id=session.id,
            status=session.status.value,
            steps=session.step_count,
        )
        await self._notify(session)
        return session

    def _record_task(self, session: Session, call: ToolCall, args: dict[str, Any]) -> Task:
        task_type = _TYPE_FOR_TOOL.get(call.name, TaskType.SUMMARY)
        command = args.get("command")
        content = args.get("content") if call.name == "write_file" else args.get("question")
        path = args.get("file_path") or args.get("path")
        target = command or path or content or ""
        task = Task(
            description=f"{call.name}: {target}".strip().rstrip(":"),
            type=task_type,
            path=path,
            content=content,
            command=command,
            status=TaskStatus.ACTIVE,
        )
        session.tasks.append(task)
        return task

    async def _execute_tool_calls(
        self,
        session: Session,
        calls: list[ToolCall],
        handle: RunHandle,
        machine: SessionStateMachine,
    ) -> None:
        """
        Dispatch the tool calls of one assistant turn in order.

        Every call id receives a tool message, including calls skipped after
        a stop, decline or question, so the history stays valid for resume.
        Working-directory notes follow the tool messages.
        """
        answered: set[str] = set()
        notes: list[str] = []
        context = ToolContext(
            session=session, workspace=self.workspace, cancel_event=handle.cancel_event
        )
        task: Optional[Task] = None
        try:
            for call in calls:
                if handle.stop_requested:
                    machine.stop()
                    break

                try:
                    args = call.parse_arguments()
                except json.JSONDecodeError as e:
                    self.logger.warning(
                        "tool_args_parse_failed",
                        session_id=session.id,
                        tool=call.name,
                        error=str(e),
                    )
                    self._append_result(
                        session, call, ToolResult.fail(f"Invalid JSON arguments: {e}")
                    )
                    answered.add(call.id)
                    continue

                task = self._record_task(session, call, args)
                self.logger.info(
                    "tool_call_started", session_id=session.id, tool=call.name, task_id=task.id
                )
                try:
                    if call.name == "run_command":
                        await self.approval_gate.authorize(
                            session, str(args.get("command", "")), handle.cancel_event
                        )
                    result = await self.tools.execute(call.name, args, context)
                except UserDeclined as e:
                    task.status = TaskStatus.CANCELLED
                    task.error = str(e)
                    self._append_result(session, call, ToolResult.fail(str(e)))
                    answered.add(call.id)
                    machine.stop()
                    break

                self._append_result(session, call, result)
                answered.add(call.id)

                if result.data.get("awaiting_user_input"):
                    machine.transition(SessionStatus.AWAITING_USER_INPUT)
                    break

                if result.success:
                    task.status = TaskStatus.FINISHED
                    if call.name == "run_command":
                        changed = sync_working_directory(
                            session, self.workspace, str(args.get("command", ""))
                        )
                        if changed is not None:
                            notes.append(changed)
                else:
                    task.status = TaskStatus.ERROR
                    task.error = result.error or "Unknown error"
                await self._notify(session)
        except CancelledError:
            if task is not None and task.status == TaskStatus.ACTIVE:
                task.status = TaskStatus.CANCELLED
            raise
        finally:
            for call in calls:
                if call.id not in answered:
                    self._append_result(
                        session,
                        call,
                        ToolResult.fail("Skipped: execution halted before this call ran"),
                    )
            for directory in notes:
                session.history.append(
                    {
                        "role": "system",
                        "content": f"[Context] Current working directory: {directory}",
                    }
                )

    def _append_result(self, session: Session, call: ToolCall, result: ToolResult) -> None:
        session.history.append(
            tool_result_to_message(call.id, call.name, result, self.max_output_chars)
        )

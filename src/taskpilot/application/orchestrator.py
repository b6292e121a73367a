"""
Application Layer - Agent Orchestrator

Service layer used by the CLI (and any other host) to drive sessions:

- Creates plans and autonomous sessions
- Runs sessions in the foreground or as background asyncio tasks
- Resumes sessions waiting for a user answer
- Applies a manual "retry with fix" to failed sessions
- Persists every session mutation through the session store

Sessions interrupted by a process exit are marked stopped when loaded.
"""

import asyncio
from typing import Optional

import structlog

from taskpilot.application.registry import SessionRegistry
from taskpilot.core.domain.approval import CommandApprovalGate
from taskpilot.core.domain.autonomous_agent import AutonomousAgent
from taskpilot.core.domain.cancellation import RunHandle
from taskpilot.core.domain.errors import (
    InvalidTransitionError,
    SessionNotFoundError,
    TaskpilotError,
)
from taskpilot.core.domain.executor import TaskExecutor
from taskpilot.core.domain.models import (
    DEFAULT_MAX_FIELD_CHARS,
    Session,
    SessionMode,
    SessionStatus,
    TaskStatus,
    TaskType,
)
from taskpilot.core.domain.planner import PlanGenerator
from taskpilot.core.domain.repair import DEFAULT_MAX_AUTO_REPAIRS, RepairEngine
from taskpilot.core.domain.state_machine import DEFAULT_MAX_STEPS, SessionStateMachine
from taskpilot.core.interfaces.llm import ModelGatewayProtocol, StreamCallback
from taskpilot.core.interfaces.state import SessionStoreProtocol
from taskpilot.core.interfaces.tools import ToolDispatcherProtocol
from taskpilot.core.interfaces.workspace import WorkspaceProtocol

logger = structlog.get_logger()

# Statuses that only exist while a run is in progress
_IN_FLIGHT_STATUSES = (
    SessionStatus.THINKING,
    SessionStatus.EXECUTING,
    SessionStatus.RUNNING,
)


class AgentOrchestrator:
    """
    Entry point for creating, running and resuming sessions.

    Args:
        gateway: Model gateway shared by planner, repair engine and agent
        tools: Tool registry
        workspace: Workspace the tools act on
        store: Session persistence
        approval_gate: Command approval policy
        max_steps: Step ceiling per run
        max_auto_repairs: Automatic repair attempts per run
        max_output_chars: Truncation limit for tool output in history
    """

    def __init__(
        self,
        gateway: ModelGatewayProtocol,
        tools: ToolDispatcherProtocol,
        workspace: WorkspaceProtocol,
        store: SessionStoreProtocol,
        approval_gate: CommandApprovalGate,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_auto_repairs: int = DEFAULT_MAX_AUTO_REPAIRS,
        max_output_chars: int = DEFAULT_MAX_FIELD_CHARS,
    ):
        self.store = store
        self.registry = SessionRegistry()
        self.planner = PlanGenerator(gateway)
        self.repair_engine = RepairEngine(gateway, max_auto_repairs)
        self.executor = TaskExecutor(
            tools=tools,
            workspace=workspace,
            approval_gate=approval_gate,
            repair_engine=self.repair_engine if max_auto_repairs > 0 else None,
            max_steps=max_steps,
            on_update=self._persist,
            max_output_chars=max_output_chars,
        )
        self.agent = AutonomousAgent(
            gateway=gateway,
            tools=tools,
            workspace=workspace,
            approval_gate=approval_gate,
            max_steps=max_steps,
            on_update=self._persist,
            max_output_chars=max_output_chars,
        )
        self._sessions: dict[str, Session] = {}
        self._loaded = False
        self.logger = logger.bind(component="agent_orchestrator")

    async def _persist(self, session: Session) -> None:
        self._sessions[session.id] = session
        await self.store.save(session)

    async def load(self) -> None:
        """Load persisted sessions, marking interrupted runs as stopped."""
        if self._loaded:
            return
        for session in await self.store.load_sessions():
            if session.status in _IN_FLIGHT_STATUSES:
                SessionStateMachine(session).stop()
                await self.store.save(session)
                self.logger.info("interrupted_session_stopped", session_id=session.id)
            self._sessions.setdefault(session.id, session)
        self._loaded = True

    async def get_session(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFoundError: If no session has this id
        """
        await self.load()
        session = self._sessions.get(session_id)
        if session is None:
            session = await self.store.load(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            self._sessions[session.id] = session
        return session

    async def list_sessions(self) -> list[Session]:
        await self.load()
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    async def create_plan(
        self, goal: str, on_stream_delta: Optional[StreamCallback] = None
    ) -> Session:
        """
        Generate a plan for ``goal``; the session waits for approval.

        The session is persisted even if planning fails.

        Raises:
            ParseError, GatewayError: Planning failed (session left in error)
            CancelledError: A stop was requested during planning
        """
        session = self.planner.create_session(goal)
        await self._persist(session)
        handle = self.registry.acquire(session.id)
        try:
            await self.planner.plan(session, on_stream_delta, handle.cancel_event)
        finally:
            self.registry.release(session.id, handle)
            await self._persist(session)
        return session

    async def execute_session(self, session_id: str) -> Session:
        """Run a session in the foreground until it halts."""
        session = await self.get_session(session_id)
        handle = self.registry.acquire(session_id)
        return await self._run(session, handle)

    async def start_background(self, session_id: str) -> RunHandle:
        """Run a session as a background asyncio task."""
        session = await self.get_session(session_id)
        handle = self.registry.acquire(session_id)
        handle.task = asyncio.create_task(self._run(session, handle))
        return handle

    async def start_autonomous(
        self,
        goal: str,
        active_file: Optional[str] = None,
        background: bool = False,
    ) -> Session:
        """Create an autonomous session and run it."""
        session = self.agent.create_session(goal, active_file=active_file)
        await self._persist(session)
        self.logger.info(
            "autonomous_session_created", session_id=session.id, active_file=active_file
        )
        if background:
            await self.start_background(session.id)
            return session
        return await self.execute_session(session.id)

    async def resume_with_answer(
        self, session_id: str, answer: str, background: bool = False
    ) -> Session:
        """
        Answer the pending question of a session and continue running it.

        Raises:
            InvalidTransitionError: If the session is not awaiting user input
        """
        session = await self.get_session(session_id)
        if session.status != SessionStatus.AWAITING_USER_INPUT:
            raise InvalidTransitionError(
                f"Session {session_id} is not awaiting user input ({session.status.value})"
            )

        question = session.pending_question or ""
        session.history.append(
            {"role": "user", "content": f'User\'s answer to "{question}": {answer}'}
        )
        for task in session.active_tasks():
            if task.type == TaskType.ASK_USER:
                task.status = TaskStatus.FINISHED
        session.pending_question = None
        await self._persist(session)
        self.logger.info("user_answer_received", session_id=session_id)

        if background:
            await self.start_background(session_id)
            return session
        return await self.execute_session(session_id)

    async def retry_with_fix(self, session_id: str, auto_execute: bool = False) -> Session:
        """
        Ask the model to repair the last failed task of a session in error.

        This runs outside the automatic repair bound. The repaired session
        waits for approval unless ``auto_execute`` is set.

        Raises:
            InvalidTransitionError: If the session is not a plan session in error
            TaskpilotError: If the session has no failed task
            GatewayError, ParseError: The repair request failed
        """
        session = await self.get_session(session_id)
        if session.status != SessionStatus.ERROR or session.mode != SessionMode.PLAN:
            raise InvalidTransitionError(
                f"Only plan sessions in error can be repaired ({session.status.value})"
            )
        failed = next(
            (t for t in reversed(session.tasks) if t.status == TaskStatus.ERROR), None
        )
        if failed is None:
            raise TaskpilotError(f"Session {session_id} has no failed task to repair")

        handle = self.registry.acquire(session_id)
        try:
            await self.repair_engine.attempt(session, failed, handle.cancel_event)
        finally:
            self.registry.release(session_id, handle)
            await self._persist(session)

        SessionStateMachine(session).transition(SessionStatus.AWAITING_APPROVAL)
        await self._persist(session)
        self.logger.info("manual_repair_applied", session_id=session_id)

        if auto_execute:
            return await self.execute_session(session_id)
        return session

    def request_stop(self, session_id: str) -> bool:
        """Request a running session to stop; False if it is not running."""
        return self.registry.request_stop(session_id)

    def request_stop_all(self) -> list[str]:
        """Request every running session to stop; returns their ids."""
        return [sid for sid in self.registry.active_sessions() if self.request_stop(sid)]

    async def _run(self, session: Session, handle: RunHandle) -> Session:
        try:
            if session.mode == SessionMode.AUTONOMOUS:
                return await self.agent.run(session, handle)
            return await self.executor.run(session, handle)
        finally:
            self.registry.release(session.id, handle)
            await self._persist(session)

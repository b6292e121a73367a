"""
Plan Generator

Asks the model for a plan in one request and turns the answer into a
session awaiting approval. Nothing is executed here.
"""

import asyncio
from typing import Optional

import structlog

from taskpilot.core.domain.errors import CancelledError, GatewayError, ParseError
from taskpilot.core.domain.models import (
    DEFAULT_PLAN,
    DEFAULT_WORKING_DIRECTORY,
    Session,
    SessionMode,
    SessionStatus,
    Task,
)
from taskpilot.core.domain.state_machine import SessionStateMachine
from taskpilot.core.interfaces.llm import ModelGatewayProtocol, StreamCallback
from taskpilot.core.parsing.recovery_parser import parse_structured
from taskpilot.core.prompts.planning_prompts import build_planning_messages


class PlanGenerator:
    """Creates plan-mode sessions from a goal."""

    def __init__(self, gateway: ModelGatewayProtocol):
        self.gateway = gateway
        self.logger = structlog.get_logger().bind(component="plan_generator")

    @staticmethod
    def create_session(
        goal: str, working_directory: str = DEFAULT_WORKING_DIRECTORY
    ) -> Session:
        return Session(
            goal=goal, working_directory=working_directory, mode=SessionMode.PLAN
        )

    async def generate(
        self,
        goal: str,
        on_stream_delta: Optional[StreamCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        working_directory: str = DEFAULT_WORKING_DIRECTORY,
    ) -> Session:
        """Create a session for ``goal`` and plan it; see ``plan``."""
        session = self.create_session(goal, working_directory)
        return await self.plan(session, on_stream_delta, cancel_event)

    async def plan(
        self,
        session: Session,
        on_stream_delta: Optional[StreamCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Session:
        """
        Fill ``session`` with the model's plan and move it to awaiting_approval.

        Raises:
            ParseError: The response held no object or an empty task list
            GatewayError: The model call failed
            CancelledError: The request was cancelled

            In every failure case the session is left in error (or stopped
            on cancellation) before the exception propagates.
        """
        machine = SessionStateMachine(session)
        machine.transition(SessionStatus.THINKING)
        self.logger.info("plan_requested", session_id=session.id, goal=session.goal[:100])

        try:
            response = await self.gateway.chat(
                build_planning_messages(session.goal, session.working_directory),
                on_stream_delta=on_stream_delta,
                cancel_event=cancel_event,
            )
            data = parse_structured(response.content)
            raw_tasks = data.get("tasks")
            if not isinstance(raw_tasks, list) or not raw_tasks:
                raise ParseError("Plan contained no tasks", response.content)
        except CancelledError:
            machine.stop()
            raise
        except (GatewayError, ParseError) as e:
            session.thoughts = str(e)
            machine.transition(SessionStatus.ERROR)
            self.logger.error(
                "plan_generation_failed",
                session_id=session.id,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            raise

        plan = data.get("plan")
        if isinstance(plan, list):
            plan = "\n".join(str(step) for step in plan)
        session.plan = str(plan).strip() if plan else DEFAULT_PLAN
        session.thoughts = str(data.get("thoughts") or response.reasoning or "")
        session.tasks = [Task.from_model_output(raw, i) for i, raw in enumerate(raw_tasks)]
        session.history.append({"role": "user", "content": session.goal})
        session.history.append({"role": "assistant", "content": response.content})

        machine.transition(SessionStatus.AWAITING_APPROVAL)
        self.logger.info(
            "plan_generated", session_id=session.id, tasks=len(session.tasks)
        )
        return session

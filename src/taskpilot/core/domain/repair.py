"""
Repair Engine

When a task fails, the model is asked for a short remediation plan. The new
tasks are spliced in right after the failed task, which is marked repaired
and never re-entered. Automatic repair is bounded per run so a model that
keeps proposing broken fixes cannot loop forever.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from taskpilot.core.domain.errors import GatewayError, ParseError
from taskpilot.core.domain.models import Session, Task, TaskStatus
from taskpilot.core.interfaces.llm import ModelGatewayProtocol
from taskpilot.core.parsing.recovery_parser import parse_structured
from taskpilot.core.prompts.repair_prompts import build_repair_prompt

DEFAULT_MAX_AUTO_REPAIRS = 5


def failure_signature(task: Task) -> str:
    """Identity of a failure as ``type|command|path|error``."""
    return "|".join(
        [task.type.value, task.command or "", task.path or "", task.error or ""]
    )


@dataclass
class RepairBudget:
    """
    Repair attempts consumed by one run.

    An attempt is any repair request, including ones whose model call or
    parse failed. The counter resets once every task inserted by the latest
    repair has finished.
    """

    max_attempts: int = DEFAULT_MAX_AUTO_REPAIRS
    attempts: int = 0
    pending_ids: set[str] = field(default_factory=set)
    signatures: list[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def track(self, tasks: list[Task]) -> None:
        self.pending_ids = {t.id for t in tasks}

    def record_success(self, task_id: str) -> None:
        if task_id not in self.pending_ids:
            return
        self.pending_ids.discard(task_id)
        if not self.pending_ids:
            self.attempts = 0


class RepairEngine:
    """
    Requests and applies remediation plans.

    Args:
        gateway: Model gateway used for repair requests
        max_auto_repairs: Attempts allowed per run before giving up
    """

    def __init__(
        self,
        gateway: ModelGatewayProtocol,
        max_auto_repairs: int = DEFAULT_MAX_AUTO_REPAIRS,
    ):
        self.gateway = gateway
        self.max_auto_repairs = max_auto_repairs
        self.logger = structlog.get_logger().bind(component="repair_engine")

    def new_budget(self) -> RepairBudget:
        return RepairBudget(max_attempts=self.max_auto_repairs)

    async def repair(
        self,
        session: Session,
        failed_task: Task,
        cancel_event: Optional[asyncio.Event] = None,
        budget: Optional[RepairBudget] = None,
    ) -> bool:
        """
        Repair ``failed_task`` within the budget of the current run.

        Failed model calls and unusable responses count as attempts and are
        retried while the budget lasts. Cancellation propagates.

        Returns:
            True if remediation tasks were inserted, False when the budget
            is exhausted.
        """
        budget = budget or self.new_budget()
        signature = failure_signature(failed_task)
        while not budget.exhausted:
            budget.attempts += 1
            self.logger.info(
                "repair_requested",
                session_id=session.id,
                task_id=failed_task.id,
                attempt=budget.attempts,
                max_attempts=budget.max_attempts,
            )
            try:
                new_tasks = await self.attempt(
                    session, failed_task, cancel_event, budget.signatures
                )
            except (GatewayError, ParseError) as e:
                self.logger.warning(
                    "repair_attempt_failed",
                    session_id=session.id,
                    attempt=budget.attempts,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )
                continue
            budget.track(new_tasks)
            budget.signatures.append(signature)
            return True

        self.logger.error(
            "repair_budget_exhausted",
            session_id=session.id,
            task_id=failed_task.id,
            attempts=budget.attempts,
        )
        return False

    async def attempt(
        self,
        session: Session,
        failed_task: Task,
        cancel_event: Optional[asyncio.Event] = None,
        previous_failures: Iterable[str] = (),
    ) -> list[Task]:
        """
        One unbounded repair request; also used for manual retry with fix.

        Raises:
            GatewayError: The model call failed
            ParseError: The response held no usable task list
            CancelledError: The run was stopped during the call
        """
        prompt = build_repair_prompt(session, failed_task, previous_failures)
        response = await self.gateway.chat(
            [{"role": "user", "content": prompt}], cancel_event=cancel_event
        )

        data = parse_structured(response.content, expect_any=("tasks",))
        raw_tasks = data.get("tasks")
        if not isinstance(raw_tasks, list) or not raw_tasks:
            raise ParseError("Repair response contained no tasks", response.content)

        new_tasks = [Task.from_model_output(raw, i) for i, raw in enumerate(raw_tasks)]
        self.apply(session, failed_task, new_tasks, str(data.get("thoughts") or ""))
        return new_tasks

    def apply(
        self,
        session: Session,
        failed_task: Task,
        new_tasks: list[Task],
        thoughts: str = "",
    ) -> None:
        """Mark ``failed_task`` repaired and splice ``new_tasks`` after it."""
        failed_task.status = TaskStatus.REPAIRED
        failed_task.error = f"{failed_task.error or 'Unknown error'} (Repaired)"
        session.insert_tasks_after(failed_task, new_tasks)
        annotation = thoughts.strip() or f"Fixing failed task: {failed_task.description}"
        session.thoughts = f"[REPAIR] {annotation}\n\n{session.thoughts}".rstrip()
        session.touch()
        self.logger.info(
            "repair_applied",
            session_id=session.id,
            task_id=failed_task.id,
            new_tasks=len(new_tasks),
        )

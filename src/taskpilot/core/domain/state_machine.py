"""
Session State Machine

Enumerates the legal session status transitions and guards the step
ceiling. All status changes made by the executor, repair engine and
autonomous agent go through ``SessionStateMachine.transition``.
"""

import structlog

from taskpilot.core.domain.errors import InvalidTransitionError
from taskpilot.core.domain.models import Session, SessionStatus

S = SessionStatus

TERMINAL_STATUSES = frozenset(
    {S.FINISHED, S.ERROR, S.STOPPED, S.MAX_STEPS_REACHED}
)

# Resume actions (start, retry with fix, answer) restart terminal sessions.
_RESUME_TARGETS = {S.RUNNING, S.THINKING, S.AWAITING_APPROVAL}

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    S.CREATED: frozenset(
        {S.THINKING, S.RUNNING, S.AWAITING_APPROVAL, S.ERROR, S.STOPPED}
    ),
    S.THINKING: frozenset(
        {
            S.EXECUTING,
            S.AWAITING_APPROVAL,
            S.FINISHED,
            S.ERROR,
            S.STOPPED,
            S.MAX_STEPS_REACHED,
        }
    ),
    S.EXECUTING: frozenset(
        {
            S.THINKING,
            S.AWAITING_USER_INPUT,
            S.FINISHED,
            S.ERROR,
            S.STOPPED,
            S.MAX_STEPS_REACHED,
        }
    ),
    S.AWAITING_APPROVAL: frozenset({S.RUNNING, S.STOPPED, S.ERROR}),
    S.RUNNING: frozenset(
        {
            S.AWAITING_USER_INPUT,
            S.AWAITING_APPROVAL,
            S.FINISHED,
            S.ERROR,
            S.STOPPED,
            S.MAX_STEPS_REACHED,
        }
    ),
    S.AWAITING_USER_INPUT: frozenset({S.THINKING, S.RUNNING, S.STOPPED}),
    S.FINISHED: frozenset(_RESUME_TARGETS),
    S.ERROR: frozenset(_RESUME_TARGETS),
    S.STOPPED: frozenset(_RESUME_TARGETS),
    S.MAX_STEPS_REACHED: frozenset(_RESUME_TARGETS),
}

DEFAULT_MAX_STEPS = 50


def is_terminal(status: SessionStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return current == target or target in TRANSITIONS.get(current, frozenset())


class SessionStateMachine:
    """
    Guards status transitions and the step ceiling of one session.

    Args:
        session: Session whose status is managed
        max_steps: Hard ceiling on steps per run
    """

    def __init__(self, session: Session, max_steps: int = DEFAULT_MAX_STEPS):
        self.session = session
        self.max_steps = max_steps
        self.logger = structlog.get_logger().bind(
            component="state_machine", session_id=session.id
        )

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    def transition(self, target: SessionStatus) -> None:
        """
        Move the session to ``target``.

        Raises:
            InvalidTransitionError: If the transition is not in the table
        """
        current = self.session.status
        if current == target:
            return
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Illegal session transition {current.value} -> {target.value}"
            )
        self.session.status = target
        self.session.touch()
        self.logger.debug(
            "session_transition", from_status=current.value, to_status=target.value
        )

    def reset_steps(self) -> None:
        self.session.step_count = 0

    def consume_step(self) -> bool:
        """
        Count one step against the ceiling.

        Returns:
            False when the ceiling is already reached, in which case the
            session has been moved to ``max_steps_reached``.
        """
        if self.session.step_count >= self.max_steps:
            self.logger.warning("max_steps_reached", max_steps=self.max_steps)
            self.transition(S.MAX_STEPS_REACHED)
            return False
        self.session.step_count += 1
        return True

    def stop(self) -> None:
        """Mark the session stopped unless it already reached a terminal state."""
        if not is_terminal(self.session.status):
            self.transition(S.STOPPED)

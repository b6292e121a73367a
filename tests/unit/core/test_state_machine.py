"""Unit tests for the session state machine."""

import pytest

from taskpilot.core.domain.errors import InvalidTransitionError
from taskpilot.core.domain.models import Session, SessionStatus
from taskpilot.core.domain.state_machine import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    SessionStateMachine,
    can_transition,
)


class TestTransitionTable:
    """Tests for the transition table itself."""

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(SessionStatus)

    def test_stopped_reachable_from_every_non_terminal_state(self):
        for status in SessionStatus:
            if status not in TERMINAL_STATUSES:
                assert can_transition(status, SessionStatus.STOPPED), status

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_states_only_allow_resume(self, terminal):
        assert TRANSITIONS[terminal] == {
            SessionStatus.RUNNING,
            SessionStatus.THINKING,
            SessionStatus.AWAITING_APPROVAL,
        }

    def test_every_state_can_reach_a_terminal_state(self):
        for start in SessionStatus:
            seen, frontier = {start}, [start]
            while frontier:
                for target in TRANSITIONS[frontier.pop()]:
                    if target not in seen:
                        seen.add(target)
                        frontier.append(target)
            assert seen & TERMINAL_STATUSES, start


class TestSessionStateMachine:
    """Tests for guarded transitions and the step ceiling."""

    def test_legal_transition(self):
        session = Session(goal="g")
        machine = SessionStateMachine(session)
        machine.transition(SessionStatus.THINKING)
        machine.transition(SessionStatus.AWAITING_APPROVAL)
        assert session.status == SessionStatus.AWAITING_APPROVAL

    def test_illegal_transition_raises(self):
        session = Session(goal="g", status=SessionStatus.FINISHED)
        with pytest.raises(InvalidTransitionError):
            SessionStateMachine(session).transition(SessionStatus.EXECUTING)
        assert session.status == SessionStatus.FINISHED

    def test_step_ceiling_forces_max_steps_reached(self):
        session = Session(goal="g", status=SessionStatus.RUNNING)
        machine = SessionStateMachine(session, max_steps=2)
        assert machine.consume_step()
        assert machine.consume_step()
        assert not machine.consume_step()
        assert session.status == SessionStatus.MAX_STEPS_REACHED
        assert session.step_count == 2

    def test_stop_does_not_override_terminal_status(self):
        session = Session(goal="g", status=SessionStatus.FINISHED)
        SessionStateMachine(session).stop()
        assert session.status == SessionStatus.FINISHED

    def test_stop_from_running(self):
        session = Session(goal="g", status=SessionStatus.RUNNING)
        SessionStateMachine(session).stop()
        assert session.status == SessionStatus.STOPPED

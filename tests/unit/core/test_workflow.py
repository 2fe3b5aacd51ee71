"""
Unit tests for the session state machine.
"""

import pytest
from datetime import datetime

from autonomy.core.errors import InvalidTransition
from autonomy.core.workflow import (
    SessionStatus,
    SessionTransition,
    AutonomySession,
    SessionTracker,
)


@pytest.fixture
def tracker():
    return SessionTracker()


# Test SessionTransition

class TestSessionTransition:
    """Test session transition model."""

    def test_create_transition(self):
        """Test creating a transition."""
        transition = SessionTransition(
            from_status=SessionStatus.INITIALIZING,
            to_status=SessionStatus.ANALYZING,
            progress=10,
            message="Analyzing user request..."
        )

        assert transition.from_status == SessionStatus.INITIALIZING
        assert transition.to_status == SessionStatus.ANALYZING
        assert transition.progress == 10
        assert isinstance(transition.timestamp, datetime)


# Test AutonomySession

class TestAutonomySession:
    """Test session model."""

    def test_defaults(self):
        """Test a fresh session."""
        session = AutonomySession(request_id="req-1")

        assert session.status == SessionStatus.INITIALIZING
        assert session.progress == 0
        assert session.end_time is None
        assert session.duration_seconds is None
        assert session.logs == []

    def test_terminal_statuses(self):
        """Test which statuses are terminal."""
        assert SessionStatus.COMPLETED.is_terminal
        assert SessionStatus.FAILED.is_terminal
        assert not SessionStatus.EXECUTING.is_terminal


# Test SessionTracker

class TestSessionTracker:
    """Test session tracking and transitions."""

    def test_create_session(self, tracker):
        """Test session creation logs the request."""
        session = tracker.create_session("req-1", "Build a two-step report")

        assert session.status == SessionStatus.INITIALIZING
        assert len(session.logs) == 1
        assert "Build a two-step report" in session.logs[0]
        assert session.logs[0].startswith("[")

    def test_forward_sequence(self, tracker):
        """Test the full forward path."""
        session = tracker.create_session("req-1")
        steps = [
            (SessionStatus.ANALYZING, 10),
            (SessionStatus.PLANNING, 25),
            (SessionStatus.EXECUTING, 40),
            (SessionStatus.SYNTHESIZING, 80),
            (SessionStatus.COMPLETED, 100),
        ]
        for status, progress in steps:
            updated = tracker.transition(session.id, status, progress, f"to {status.value}")
            assert updated.status == status
            assert updated.progress == progress

        final = tracker.get_session(session.id)
        assert final.end_time is not None
        assert len(final.transitions) == 5
        assert len(final.logs) == 6

    def test_skipping_a_phase_rejected(self, tracker):
        """Test that phases cannot be skipped."""
        session = tracker.create_session("req-1")

        with pytest.raises(InvalidTransition):
            tracker.transition(session.id, SessionStatus.EXECUTING, 40)

    def test_backward_transition_rejected(self, tracker):
        """Test that status never moves backward."""
        session = tracker.create_session("req-1")
        tracker.transition(session.id, SessionStatus.ANALYZING, 10)
        tracker.transition(session.id, SessionStatus.PLANNING, 25)

        with pytest.raises(InvalidTransition):
            tracker.transition(session.id, SessionStatus.ANALYZING, 10)

    def test_fail_from_any_active_status(self, tracker):
        """Test FAILED is reachable from every non-terminal status."""
        for path in ([], [SessionStatus.ANALYZING], [SessionStatus.ANALYZING, SessionStatus.PLANNING]):
            session = tracker.create_session("req-1")
            for status in path:
                tracker.transition(session.id, status, 10)
            failed = tracker.transition(session.id, SessionStatus.FAILED, 100, "boom")
            assert failed.status == SessionStatus.FAILED
            assert failed.end_time is not None

    def test_terminal_is_final(self, tracker):
        """Test nothing follows a terminal status."""
        session = tracker.create_session("req-1")
        tracker.transition(session.id, SessionStatus.FAILED, 100)

        assert not tracker.can_transition(session.id, SessionStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            tracker.transition(session.id, SessionStatus.FAILED, 100)

    def test_end_time_set_once(self, tracker):
        """Test end_time is stamped on entering a terminal status only."""
        session = tracker.create_session("req-1")
        tracker.transition(session.id, SessionStatus.ANALYZING, 10)
        assert tracker.get_session(session.id).end_time is None

        tracker.transition(session.id, SessionStatus.FAILED, 100)
        end_time = tracker.get_session(session.id).end_time
        tracker.log(session.id, "after the fact")

        assert tracker.get_session(session.id).end_time == end_time

    def test_unknown_session(self, tracker):
        """Test transitions on unknown sessions."""
        assert tracker.get_session("missing") is None
        assert not tracker.can_transition("missing", SessionStatus.ANALYZING)
        with pytest.raises(KeyError):
            tracker.transition("missing", SessionStatus.ANALYZING, 10)

    def test_returned_sessions_are_copies(self, tracker):
        """Test callers cannot mutate tracked state."""
        session = tracker.create_session("req-1")
        copy = tracker.get_session(session.id)
        copy.logs.append("tampered")
        copy.status = SessionStatus.COMPLETED

        fresh = tracker.get_session(session.id)
        assert fresh.status == SessionStatus.INITIALIZING
        assert "tampered" not in fresh.logs

    def test_current_task_cleared_on_terminal(self, tracker):
        """Test current task tracking."""
        session = tracker.create_session("req-1")
        tracker.set_current_task(session.id, "task-1")
        assert tracker.get_session(session.id).current_task_id == "task-1"

        tracker.transition(session.id, SessionStatus.FAILED, 100)
        assert tracker.get_session(session.id).current_task_id is None

    def test_sessions_by_request(self, tracker):
        """Test every run of a request is retained."""
        first = tracker.create_session("req-1")
        second = tracker.create_session("req-1")
        tracker.create_session("req-2")

        sessions = tracker.get_sessions_by_request("req-1")
        assert [s.id for s in sessions] == [first.id, second.id]

    def test_statistics(self, tracker):
        """Test per-status counts."""
        a = tracker.create_session("req-1")
        tracker.create_session("req-2")
        tracker.transition(a.id, SessionStatus.FAILED, 100)

        stats = tracker.get_statistics()
        assert stats["total_sessions"] == 2
        assert stats["by_status"] == {"failed": 1, "initializing": 1}

"""
Session state machine for autonomous runs.

A session records one scheduler run of one request:
INITIALIZING → ANALYZING → PLANNING → EXECUTING → SYNTHESIZING → COMPLETED,
with an early exit to FAILED from any non-terminal state.
"""

import logging
import threading
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from autonomy.core.errors import InvalidTransition

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """States of an autonomous run."""

    INITIALIZING = "initializing"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    EXECUTING = "executing"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class SessionTransition(BaseModel):
    """A transition between session states."""

    from_status: SessionStatus
    to_status: SessionStatus
    progress: int
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class AutonomySession(BaseModel):
    """Observable record of one run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str
    status: SessionStatus = SessionStatus.INITIALIZING
    progress: int = Field(default=0, ge=0, le=100)
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    current_task_id: Optional[str] = None
    logs: List[str] = Field(default_factory=list)
    transitions: List[SessionTransition] = Field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class SessionTracker:
    """
    Holds sessions and enforces their state machine.

    Mutations are made by the scheduler only; lookups return copies so callers
    cannot alter tracked state.
    """

    # Forward-only sequence plus FAILED from any non-terminal state
    ALLOWED_TRANSITIONS = {
        SessionStatus.INITIALIZING: [SessionStatus.ANALYZING, SessionStatus.FAILED],
        SessionStatus.ANALYZING: [SessionStatus.PLANNING, SessionStatus.FAILED],
        SessionStatus.PLANNING: [SessionStatus.EXECUTING, SessionStatus.FAILED],
        SessionStatus.EXECUTING: [SessionStatus.SYNTHESIZING, SessionStatus.FAILED],
        SessionStatus.SYNTHESIZING: [SessionStatus.COMPLETED, SessionStatus.FAILED],
        SessionStatus.COMPLETED: [],
        SessionStatus.FAILED: [],
    }

    def __init__(self):
        self._sessions: Dict[str, AutonomySession] = {}
        self._lock = threading.RLock()

    def create_session(self, request_id: str, description: str = "") -> AutonomySession:
        """
        Create a session in INITIALIZING.

        Args:
            request_id: Originating request
            description: Request text, used for the opening log line

        Returns:
            Copy of the new session
        """
        session = AutonomySession(request_id=request_id)
        self._append_log(session, f"Session created for request: {description or request_id}")
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Session {session.id} created for request {request_id}")
        return session.model_copy(deep=True)

    def can_transition(self, session_id: str, target: SessionStatus) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            return target in self.ALLOWED_TRANSITIONS[session.status]

    def transition(
        self,
        session_id: str,
        target: SessionStatus,
        progress: int,
        message: str = ""
    ) -> AutonomySession:
        """
        Move a session to a new status.

        Args:
            session_id: Session to update
            target: New status
            progress: New progress value (0-100)
            message: Human-readable log line

        Returns:
            Copy of the updated session

        Raises:
            KeyError: Unknown session
            InvalidTransition: Transition not allowed from the current status
        """
        with self._lock:
            session = self._require(session_id)
            if target not in self.ALLOWED_TRANSITIONS[session.status]:
                raise InvalidTransition(session_id, session.status.value, target.value)

            session.transitions.append(SessionTransition(
                from_status=session.status,
                to_status=target,
                progress=progress,
                message=message,
            ))
            session.status = target
            session.progress = max(0, min(100, progress))
            if message:
                self._append_log(session, message)
            if target.is_terminal:
                session.end_time = datetime.now()
                session.current_task_id = None

            logger.info(f"Session {session_id} -> {target.value} ({session.progress}%): {message}")
            return session.model_copy(deep=True)

    def log(self, session_id: str, message: str):
        """Append a timestamped line to a session's log."""
        with self._lock:
            self._append_log(self._require(session_id), message)

    def set_current_task(self, session_id: str, task_id: Optional[str]):
        with self._lock:
            session = self._require(session_id)
            if not session.status.is_terminal:
                session.current_task_id = task_id

    def get_session(self, session_id: str) -> Optional[AutonomySession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def get_sessions_by_request(self, request_id: str) -> List[AutonomySession]:
        """All sessions for a request, oldest first."""
        with self._lock:
            matches = [s for s in self._sessions.values() if s.request_id == request_id]
            return [s.model_copy(deep=True) for s in sorted(matches, key=lambda s: s.start_time)]

    def list_sessions(self) -> List[AutonomySession]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values()]

    def get_statistics(self) -> Dict[str, Any]:
        """Counts of sessions per status."""
        with self._lock:
            counts: Dict[str, int] = {}
            for session in self._sessions.values():
                counts[session.status.value] = counts.get(session.status.value, 0) + 1
            return {
                "total_sessions": len(self._sessions),
                "by_status": counts,
            }

    def _require(self, session_id: str) -> AutonomySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session: {session_id}")
        return session

    @staticmethod
    def _append_log(session: AutonomySession, message: str):
        session.logs.append(f"[{datetime.now().isoformat()}] {message}")

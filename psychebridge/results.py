"""
Result types returned by SessionEngine.

Domain failures are raised as errors (see psychebridge.errors);
these are the successful return shapes.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from psychebridge.contracts import SimulationSession


@dataclass(frozen=True)
class TurnResult:
    """
    Successful turn processing result.

    Returned by: SessionEngine.submit_turn

    Attributes:
        session: Snapshot of the session after the turn (deep copy)
        patient_reply: Text the collaborator produced (fallback text on failure)
        collaborator_failed: Whether the reply is a fallback for a failed call
        reply_dropped: True if the session stopped being active while the
            reply was in flight, so the reply was not appended
        debug: Collaborator error details, if any
    """
    session: SimulationSession
    patient_reply: str
    collaborator_failed: bool
    reply_dropped: bool
    debug: Dict[str, Any]

    def to_json(self) -> dict:
        return {
            'session': self.session.to_json(),
            'patient_reply': self.patient_reply,
            'collaborator_failed': self.collaborator_failed,
            'reply_dropped': self.reply_dropped,
            'debug': dict(self.debug)
        }


@dataclass(frozen=True)
class DashboardSummary:
    """
    Overview counts for the landing view.

    Student view:
        courses: courses completed by the student
        sessions: the student's own sessions
        awaiting_evaluation: the student's completed, not yet evaluated sessions
    Staff view:
        courses: courses in the catalog
        sessions: all sessions
        awaiting_evaluation: sessions in the review queue

    Attributes:
        user_id: Viewer
        role: 'STUDENT' or 'STAFF'
        courses, sessions, awaiting_evaluation, evaluated: counts
        active_session_id: Student's running simulation, if any
    """
    user_id: str
    role: str
    courses: int
    sessions: int
    awaiting_evaluation: int
    evaluated: int
    active_session_id: Optional[str] = None

    def to_json(self) -> dict:
        return {
            'user_id': self.user_id,
            'role': self.role,
            'courses': self.courses,
            'sessions': self.sessions,
            'awaiting_evaluation': self.awaiting_evaluation,
            'evaluated': self.evaluated,
            'active_session_id': self.active_session_id
        }

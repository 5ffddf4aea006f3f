"""
Session Engine - Simulation lifecycle, turn-taking and progress (core)

Responsibilities:
- Own the process-wide session collection and progress records
- Start sessions for unlocked courses
- Turn-taking with the AI collaborator (optimistic student append,
  pending flag, patient append)
- Session completion and staff evaluation transitions
- Mirror full state to persistence after every mutation
- Notify subscribers (presentation layer) of every change

Design principles:
- Single writer: the presentation layer only gets deep copies
- Domain errors are raised, never hidden behind UI affordances
- One re-entrant lock serializes mutation; the collaborator call runs
  outside it so other sessions stay responsive
- At most one reply in flight per session (rejected, not queued)
- Replies landing after the session left 'active' are dropped

Session lifecycle:
    active --end_session--> completed --evaluate--> evaluated
"""

import copy
import logging
import threading
from typing import Callable, Dict, List, Optional, Set

from psychebridge.catalog import Catalog
from psychebridge.contracts import (
    Evaluation,
    Interaction,
    InteractionRole,
    SessionStatus,
    SimulationSession,
    StudentProgress,
    UserRole,
)
from psychebridge.core.collaborator import CollaboratorReply
from psychebridge.core.progress_tracker import ProgressTracker
from psychebridge.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from psychebridge.persistence import MemoryStore, StatePersistence
from psychebridge.results import DashboardSummary, TurnResult
from psychebridge.utils.helpers import generate_session_id, now_ms

logger = logging.getLogger(__name__)

# Listener signature: (event_name, payload)
Listener = Callable[[str, object], None]


class SessionEngine:
    """
    Owns sessions and progress; the only component that mutates them.

    Events published to subscribers:
        session_started, turn_submitted, reply_pending, reply_received,
        reply_dropped, session_ended, session_evaluated, progress_updated
    """

    def __init__(self, catalog: Catalog, collaborator, persistence: Optional[StatePersistence] = None):
        """
        Initialize engine and restore persisted state

        Args:
            catalog: User/course catalog
            collaborator: PatientCollaborator (generate_patient_reply,
                generate_supervisor_briefing)
            persistence: State persistence (defaults to in-memory)

        Raises:
            TypeError: If collaborator lacks the required methods
            PersistenceError: If stored state is unreadable
        """
        for method in ('generate_patient_reply', 'generate_supervisor_briefing'):
            if not callable(getattr(collaborator, method, None)):
                raise TypeError(f"collaborator must have callable {method}() method")

        self.catalog = catalog
        self.collaborator = collaborator
        self.persistence = persistence or StatePersistence(MemoryStore())
        self.tracker = ProgressTracker(catalog)

        self._lock = threading.RLock()
        self._sessions: List[SimulationSession] = []  # most recent first
        self._sessions_by_id: Dict[str, SimulationSession] = {}
        self._progress: Dict[str, StudentProgress] = {}
        self._pending: Set[str] = set()
        self._listeners: List[Listener] = []

        self._restore()

    # ========================
    # Private Helpers
    # ========================

    def _restore(self) -> None:
        state = self.persistence.load()
        if state is None:
            return

        for progress in state.progress:
            self._progress[progress.student_id] = progress
        for session in state.sessions:
            self._sessions.append(session)
            self._sessions_by_id[session.id] = session

        logger.info(
            f"Restored {len(self._sessions)} sessions and "
            f"{len(self._progress)} progress records"
        )

    def _save(self) -> None:
        self.persistence.save(list(self._progress.values()), list(self._sessions))

    def _notify(self, event: str, payload: object) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Listener failed on '{event}': {type(e).__name__}: {e}")

    def _get(self, session_id: str) -> SimulationSession:
        session = self._sessions_by_id.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def _snapshot(self, session: SimulationSession) -> SimulationSession:
        return copy.deepcopy(session)

    def _require_student(self, user_id: str):
        user = self.catalog.get_user(user_id)
        if user.role != UserRole.STUDENT:
            raise PreconditionError(f"User {user_id} is not a student")
        return user

    def _check_transition(self, session: SimulationSession, target: SessionStatus) -> None:
        if not session.status.can_advance_to(target):
            raise InvalidTransitionError(
                f"Session {session.id} cannot move from "
                f"{session.status.value} to {target.value}"
            )

    # ========================
    # Subscriptions
    # ========================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener

        Args:
            listener: Called as listener(event, payload) after each change.
                Payloads are snapshots; exceptions are logged and ignored.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ========================
    # Progress
    # ========================

    def mark_completed(self, student_id: str, course_id: str) -> StudentProgress:
        """
        Record that a student acknowledged all modules of a course

        Idempotent. Unlocks the course's simulation.

        Raises:
            NotFoundError: Unknown student or course
            PreconditionError: User is not a student
        """
        with self._lock:
            self._require_student(student_id)
            self.catalog.get_course(course_id)

            progress = self.tracker.get_or_create(self._progress, student_id)
            self.tracker.mark_completed(progress, course_id)
            self._save()

            snapshot = copy.deepcopy(progress)
            self._notify('progress_updated', snapshot)
            return snapshot

    def get_progress(self, student_id: str) -> StudentProgress:
        """
        Returns:
            Copy of the student's progress (empty if none recorded yet)

        Raises:
            NotFoundError: Unknown student
            PreconditionError: User is not a student
        """
        with self._lock:
            self._require_student(student_id)
            progress = self._progress.get(student_id)
            if progress is None:
                return StudentProgress(student_id=student_id)
            return copy.deepcopy(progress)

    # ========================
    # Session lifecycle
    # ========================

    def start_session(self, student_id: str, course_id: str) -> SimulationSession:
        """
        Start a simulation for an unlocked course

        The new session is prepended to the collection and becomes the
        student's active session.

        Args:
            student_id: Student starting the simulation
            course_id: Course whose patient is simulated

        Returns:
            Snapshot of the new session (active, empty transcript)

        Raises:
            NotFoundError: Unknown student or course
            PreconditionError: User is not a student, or the course is
                not in the student's completed courses
        """
        with self._lock:
            self._require_student(student_id)
            self.catalog.get_course(course_id)

            progress = self._progress.get(student_id)
            if progress is None or not progress.has_completed(course_id):
                raise PreconditionError(
                    f"Course {course_id} is locked for {student_id}: "
                    f"complete its modules before starting a simulation"
                )

            session = SimulationSession(
                id=generate_session_id(),
                student_id=student_id,
                course_id=course_id,
                start_time=now_ms()
            )
            self._sessions.insert(0, session)
            self._sessions_by_id[session.id] = session
            progress.active_session_id = session.id
            self._save()

            logger.info(f"Started session {session.id} for {student_id} on {course_id}")

            snapshot = self._snapshot(session)
            self._notify('session_started', snapshot)
            return snapshot

    def submit_turn(self, session_id: str, student_text: str) -> TurnResult:
        """
        Take one turn: student message, then simulated patient reply

        1. Append the trimmed student message (saved and published at once)
        2. Mark a reply pending for this session
        3. Ask the collaborator, outside the lock
        4. Append the patient reply and clear the pending flag

        If the session was ended while the reply was in flight, the reply
        is dropped and the frozen transcript is left untouched.

        Args:
            session_id: Active session
            student_text: Student message

        Returns:
            TurnResult with session snapshot and reply status

        Raises:
            NotFoundError: Unknown session
            PreconditionError: Session not active, or a reply is already
                pending for it
            ValidationError: Message is empty after trimming
        """
        with self._lock:
            session = self._get(session_id)

            if not session.is_active:
                raise PreconditionError(
                    f"Session {session_id} is {session.status.value}; transcript is read-only"
                )
            if session_id in self._pending:
                raise PreconditionError(
                    f"Session {session_id} is waiting for a patient reply"
                )
            if not isinstance(student_text, str) or not student_text.strip():
                raise ValidationError("Message is empty")

            text = student_text.strip()
            course = self.catalog.get_course(session.course_id)
            history = list(session.transcript)

            session.transcript.append(Interaction(role=InteractionRole.STUDENT, content=text))
            self._pending.add(session_id)
            try:
                self._save()
            except Exception:
                # Turn never started: undo the student entry so turns stay paired
                session.transcript.pop()
                self._pending.discard(session_id)
                raise

            self._notify('turn_submitted', self._snapshot(session))
            self._notify('reply_pending', session_id)

        try:
            reply: CollaboratorReply = self.collaborator.generate_patient_reply(
                course.patient_bio, history, text
            )
        except Exception:
            with self._lock:
                self._pending.discard(session_id)
            raise

        with self._lock:
            dropped = not session.is_active
            try:
                if dropped:
                    logger.warning(
                        f"Dropping patient reply for {session_id}: "
                        f"session is {session.status.value}"
                    )
                else:
                    session.transcript.append(
                        Interaction(role=InteractionRole.PATIENT, content=reply.text)
                    )
                    self._save()
            finally:
                self._pending.discard(session_id)

            snapshot = self._snapshot(session)
            self._notify('reply_dropped' if dropped else 'reply_received', snapshot)

        if reply.failed:
            logger.warning(f"Session {session_id} received fallback reply ({reply.error})")

        return TurnResult(
            session=snapshot,
            patient_reply=reply.text,
            collaborator_failed=reply.failed,
            reply_dropped=dropped,
            debug={'collaborator_error': reply.error} if reply.error else {}
        )

    def end_session(self, session_id: str) -> SimulationSession:
        """
        Complete an active session; its transcript is frozen from now on

        A reply still in flight is dropped when it lands.

        Raises:
            NotFoundError: Unknown session
            InvalidTransitionError: Session is not active
        """
        with self._lock:
            session = self._get(session_id)
            self._check_transition(session, SessionStatus.COMPLETED)

            session.status = SessionStatus.COMPLETED
            progress = self._progress.get(session.student_id)
            if progress is not None and progress.active_session_id == session_id:
                progress.active_session_id = None
            self._save()

            if session_id in self._pending:
                logger.info(f"Session {session_id} ended with a reply in flight")
            logger.info(f"Completed session {session_id} ({len(session.transcript)} interactions)")

            snapshot = self._snapshot(session)
            self._notify('session_ended', snapshot)
            return snapshot

    def evaluate(self, session_id: str, evaluation: Evaluation) -> SimulationSession:
        """
        Attach a staff evaluation to a completed session

        Args:
            session_id: Completed session
            evaluation: Validated Evaluation (see Evaluation.from_form)

        Returns:
            Snapshot of the evaluated session

        Raises:
            ValidationError: evaluation is not an Evaluation
            NotFoundError: Unknown session or staff id
            InvalidTransitionError: Session is not completed
            PreconditionError: Evaluator is not staff
        """
        if not isinstance(evaluation, Evaluation):
            raise ValidationError("evaluation must be an Evaluation")

        with self._lock:
            session = self._get(session_id)
            self._check_transition(session, SessionStatus.EVALUATED)

            staff = self.catalog.get_user(evaluation.staff_id)
            if staff.role != UserRole.STAFF:
                raise PreconditionError(f"User {staff.id} is not staff")

            session.evaluation = evaluation
            session.status = SessionStatus.EVALUATED
            session.check_invariants()
            self._save()

            logger.info(f"Session {session_id} evaluated by {staff.id}: {evaluation.score}/100")

            snapshot = self._snapshot(session)
            self._notify('session_evaluated', snapshot)
            return snapshot

    def generate_briefing(self, session_id: str) -> CollaboratorReply:
        """
        Supervisor briefing over a finished transcript

        Raises:
            NotFoundError: Unknown session
            PreconditionError: Session is still active
        """
        with self._lock:
            session = self._get(session_id)
            if session.is_active:
                raise PreconditionError(f"Session {session_id} is still active")
            transcript = list(session.transcript)

        return self.collaborator.generate_supervisor_briefing(transcript)

    # ========================
    # Queries
    # ========================

    def get_session(self, session_id: str) -> SimulationSession:
        """
        Raises:
            NotFoundError: Unknown session
        """
        with self._lock:
            return self._snapshot(self._get(session_id))

    def list_sessions(self, student_id: Optional[str] = None,
                      status: Optional[SessionStatus] = None) -> List[SimulationSession]:
        """
        Sessions, most recent first, optionally filtered by owner and status

        Raises:
            ValidationError: Unknown status value
        """
        if status is not None:
            try:
                status = SessionStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'") from None

        with self._lock:
            return [
                self._snapshot(s) for s in self._sessions
                if (student_id is None or s.student_id == student_id)
                and (status is None or s.status == status)
            ]

    def pending_reviews(self) -> List[SimulationSession]:
        """Staff review queue: completed, not yet evaluated sessions"""
        return self.list_sessions(status=SessionStatus.COMPLETED)

    def active_session(self, student_id: str) -> Optional[SimulationSession]:
        """Student's current simulation, if one is running"""
        with self._lock:
            progress = self._progress.get(student_id)
            if progress is None or progress.active_session_id is None:
                return None
            session = self._sessions_by_id.get(progress.active_session_id)
            if session is None or not session.is_active:
                return None
            return self._snapshot(session)

    def is_reply_pending(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._pending

    def dashboard(self, user_id: str) -> DashboardSummary:
        """
        Overview counts for a user's landing view

        Raises:
            NotFoundError: Unknown user
        """
        user = self.catalog.get_user(user_id)

        with self._lock:
            if user.role == UserRole.STUDENT:
                sessions = [s for s in self._sessions if s.student_id == user_id]
                progress = self._progress.get(user_id)
                courses = len(progress.completed_course_ids) if progress else 0
                active = self.active_session(user_id)
                active_id = active.id if active else None
            else:
                sessions = list(self._sessions)
                courses = len(self.catalog.list_courses())
                active_id = None

            return DashboardSummary(
                user_id=user_id,
                role=user.role.value,
                courses=courses,
                sessions=len(sessions),
                awaiting_evaluation=sum(1 for s in sessions if s.status == SessionStatus.COMPLETED),
                evaluated=sum(1 for s in sessions if s.status == SessionStatus.EVALUATED),
                active_session_id=active_id
            )

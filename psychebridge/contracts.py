"""
Domain contracts for the clinical training system.

This module defines the data shapes shared between the catalog, the
session engine, persistence and the presentation layer.

Design principles:
- Reference data (User, Course) and log entries (Interaction,
  Evaluation) are frozen dataclasses, immutable after creation
- SimulationSession and StudentProgress are mutable records, but only
  the session engine mutates them; everyone else gets deep copies
- Construction validates invariants (fail-fast, ValidationError)
- Every type round-trips through to_json()/from_json()

Contents:
- UserRole, InteractionRole, SessionStatus: enumerations
- User, Course: catalog entries
- Interaction: one transcript entry
- Evaluation: staff certification of a completed session
- SimulationSession: one simulated patient conversation
- StudentProgress: completed courses and current simulation per student

Usage:
    from psychebridge.contracts import SimulationSession, Evaluation
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from psychebridge.errors import ValidationError
from psychebridge.utils.helpers import now_ms


class UserRole(str, Enum):
    """Role selected at login"""
    STUDENT = "STUDENT"
    STAFF = "STAFF"


class InteractionRole(str, Enum):
    """Speaker of a transcript entry"""
    STUDENT = "student"
    PATIENT = "patient"


class SessionStatus(str, Enum):
    """
    Simulation session lifecycle.

    Status only advances forward: active -> completed -> evaluated.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    EVALUATED = "evaluated"

    @property
    def rank(self) -> int:
        return list(SessionStatus).index(self)

    def can_advance_to(self, target: "SessionStatus") -> bool:
        """True only for the single next step in the lifecycle"""
        return target.rank == self.rank + 1


def _require_text(value: Any, field_name: str) -> str:
    """Return stripped text or raise ValidationError if missing/blank"""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def _require_key(data: Dict[str, Any], key: str, record: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValidationError(f"{record} record missing '{key}'") from None
    except TypeError:
        raise ValidationError(f"{record} record must be a dict, got {type(data).__name__}") from None


def _require_list(data: Dict[str, Any], key: str, record: str, item_type: type) -> list:
    """Optional list field from a stored record; every item must be item_type"""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{record} '{key}' must be a list, got {type(value).__name__}")
    for item in value:
        if not isinstance(item, item_type):
            raise ValidationError(
                f"{record} '{key}' items must be {item_type.__name__}, got {type(item).__name__}"
            )
    return value


def _require_int(data: Dict[str, Any], key: str, record: str) -> int:
    value = _require_key(data, key, record)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{record} '{key}' must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class User:
    """
    Catalog user. Immutable reference data, never created at runtime.

    Attributes:
        id: User identifier (e.g. 'u-2')
        name: Display name
        role: STUDENT or STAFF
        avatar: Avatar image reference (URL)
    """
    id: str
    name: str
    role: UserRole
    avatar: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'role', UserRole(self.role))

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role == UserRole.STAFF

    def to_json(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role.value,
            'avatar': self.avatar
        }

    @staticmethod
    def from_json(data: dict) -> "User":
        return User(
            id=_require_key(data, 'id', 'user'),
            name=_require_key(data, 'name', 'user'),
            role=_require_key(data, 'role', 'user'),
            avatar=data.get('avatar', '')
        )


@dataclass(frozen=True)
class Course:
    """
    Catalog course.

    Attributes:
        id: Course identifier (e.g. 'cbt-101')
        title: Course title
        description: Short description for the catalog
        modules: Ordered learning module titles
        patient_scenario: One-line scenario shown to the student
        patient_bio: Persona text fed to the AI collaborator
    """
    id: str
    title: str
    description: str
    modules: Tuple[str, ...]
    patient_scenario: str
    patient_bio: str

    def __post_init__(self):
        object.__setattr__(self, 'modules', tuple(self.modules))

    def to_json(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'modules': list(self.modules),
            'patient_scenario': self.patient_scenario,
            'patient_bio': self.patient_bio
        }

    @staticmethod
    def from_json(data: dict) -> "Course":
        return Course(
            id=_require_key(data, 'id', 'course'),
            title=_require_key(data, 'title', 'course'),
            description=data.get('description', ''),
            modules=data.get('modules', []),
            patient_scenario=data.get('patient_scenario', ''),
            patient_bio=_require_key(data, 'patient_bio', 'course')
        )


@dataclass(frozen=True)
class Interaction:
    """
    One transcript entry. Appended, never edited or removed.

    Attributes:
        role: 'student' or 'patient'
        content: Message text
        timestamp: Epoch milliseconds (informational; order is list order)
    """
    role: InteractionRole
    content: str
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self):
        object.__setattr__(self, 'role', InteractionRole(self.role))

    def to_json(self) -> dict:
        return {
            'role': self.role.value,
            'content': self.content,
            'timestamp': self.timestamp
        }

    @staticmethod
    def from_json(data: dict) -> "Interaction":
        content = _require_key(data, 'content', 'interaction')
        if not isinstance(content, str):
            raise ValidationError(f"interaction 'content' must be text, got {type(content).__name__}")

        try:
            return Interaction(
                role=_require_key(data, 'role', 'interaction'),
                content=content,
                timestamp=_require_int(data, 'timestamp', 'interaction')
            )
        except ValueError as e:
            raise ValidationError(f"Invalid interaction record: {e}") from e


def _split_items(raw: Any) -> Tuple[str, ...]:
    """
    Normalise a strengths/improvements form field.

    Free text is split into one item per non-blank line; a list is
    taken item by item. Blank entries are dropped.
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = raw.splitlines()
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        raise ValidationError(f"Expected text or list, got {type(raw).__name__}")

    result = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError(f"List items must be text, got {type(item).__name__}")
        if item.strip():
            result.append(item.strip())
    return tuple(result)


def _parse_score(raw: Any) -> int:
    """Parse a score from a form value. Integers only, 0-100."""
    if isinstance(raw, bool):
        raise ValidationError("score must be an integer")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, str):
        try:
            raw = int(raw.strip())
        except ValueError:
            raise ValidationError(f"score must be an integer, got '{raw}'") from None
    if not isinstance(raw, int):
        raise ValidationError(f"score must be an integer, got {raw!r}")
    return raw


@dataclass(frozen=True)
class Evaluation:
    """
    Staff certification of a completed session.

    Created exactly once per session, at the completed -> evaluated
    transition. Validation enforced at construction.

    Attributes:
        score: Integer 0-100
        feedback: Required narrative feedback
        strengths: Observed strengths
        improvements: Suggested improvements
        staff_id: Reviewing staff member
        evaluated_at: Epoch milliseconds

    Examples:
        >>> Evaluation(score=90, feedback="Good rapport",
        ...            strengths=["listening"], improvements=["pacing"],
        ...            staff_id="u-1")
        >>> Evaluation(score=120, ...)  # Raises ValidationError
    """
    score: int
    feedback: str
    strengths: Tuple[str, ...]
    improvements: Tuple[str, ...]
    staff_id: str
    evaluated_at: int = field(default_factory=now_ms)

    def __post_init__(self):
        if isinstance(self.score, bool) or not isinstance(self.score, int):
            raise ValidationError(f"score must be an integer, got {self.score!r}")
        if not 0 <= self.score <= 100:
            raise ValidationError(f"score must be between 0 and 100, got {self.score}")

        object.__setattr__(self, 'feedback', _require_text(self.feedback, 'feedback'))
        object.__setattr__(self, 'staff_id', _require_text(self.staff_id, 'staff_id'))
        object.__setattr__(self, 'strengths', _split_items(self.strengths))
        object.__setattr__(self, 'improvements', _split_items(self.improvements))

    @classmethod
    def from_form(cls, form: Dict[str, Any], staff_id: str,
                  evaluated_at: Optional[int] = None) -> "Evaluation":
        """
        Build an Evaluation from raw evaluation-form fields.

        Args:
            form: {'score', 'feedback', 'strengths', 'improvements'}.
                  Score may be text ("85"); strengths/improvements may be
                  multi-line text (one item per line) or lists.
            staff_id: Submitting staff member
            evaluated_at: Override timestamp (defaults to now)

        Returns:
            Evaluation

        Raises:
            ValidationError: Missing score/feedback, non-integer or
                out-of-range score
        """
        if form.get('score') is None:
            raise ValidationError("score is required")

        return cls(
            score=_parse_score(form['score']),
            feedback=form.get('feedback'),
            strengths=form.get('strengths'),
            improvements=form.get('improvements'),
            staff_id=staff_id,
            evaluated_at=evaluated_at if evaluated_at is not None else now_ms()
        )

    def to_json(self) -> dict:
        return {
            'score': self.score,
            'feedback': self.feedback,
            'strengths': list(self.strengths),
            'improvements': list(self.improvements),
            'staff_id': self.staff_id,
            'evaluated_at': self.evaluated_at
        }

    @staticmethod
    def from_json(data: dict) -> "Evaluation":
        return Evaluation(
            score=_require_key(data, 'score', 'evaluation'),
            feedback=_require_key(data, 'feedback', 'evaluation'),
            strengths=data.get('strengths', []),
            improvements=data.get('improvements', []),
            staff_id=_require_key(data, 'staff_id', 'evaluation'),
            evaluated_at=_require_int(data, 'evaluated_at', 'evaluation')
        )


@dataclass
class SimulationSession:
    """
    One simulated patient conversation, owned by one student.

    Invariants (checked on construction):
    - evaluation is present if and only if status is 'evaluated'

    Lifecycle rules (enforced by SessionEngine, the only writer):
    - status only advances active -> completed -> evaluated
    - transcript is appended only while active
    - never deleted
    """
    id: str
    student_id: str
    course_id: str
    start_time: int
    status: SessionStatus = SessionStatus.ACTIVE
    transcript: List[Interaction] = field(default_factory=list)
    evaluation: Optional[Evaluation] = None

    def __post_init__(self):
        self.status = SessionStatus(self.status)
        self.check_invariants()

    def check_invariants(self) -> None:
        """
        Raises:
            ValidationError: If evaluation presence disagrees with status
        """
        evaluated = self.status == SessionStatus.EVALUATED
        if evaluated and self.evaluation is None:
            raise ValidationError(f"Session {self.id} is evaluated but has no evaluation")
        if not evaluated and self.evaluation is not None:
            raise ValidationError(
                f"Session {self.id} has an evaluation but status is {self.status.value}"
            )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def to_json(self) -> dict:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'transcript': [entry.to_json() for entry in self.transcript],
            'status': self.status.value,
            'evaluation': self.evaluation.to_json() if self.evaluation else None,
            'start_time': self.start_time
        }

    @staticmethod
    def from_json(data: dict) -> "SimulationSession":
        evaluation_data = data.get('evaluation') if isinstance(data, dict) else None
        try:
            status = SessionStatus(_require_key(data, 'status', 'session'))
        except ValueError as e:
            raise ValidationError(f"Invalid session status: {e}") from e

        return SimulationSession(
            id=_require_key(data, 'id', 'session'),
            student_id=_require_key(data, 'student_id', 'session'),
            course_id=_require_key(data, 'course_id', 'session'),
            start_time=_require_int(data, 'start_time', 'session'),
            status=status,
            transcript=[
                Interaction.from_json(entry)
                for entry in _require_list(data, 'transcript', 'session', dict)
            ],
            evaluation=Evaluation.from_json(evaluation_data) if evaluation_data else None
        )


@dataclass
class StudentProgress:
    """
    Course completion record for one student.

    Attributes:
        student_id: Owning student
        completed_course_ids: Courses acknowledged as completed (set semantics)
        active_session_id: Student's current simulation, if one is running
    """
    student_id: str
    completed_course_ids: Set[str] = field(default_factory=set)
    active_session_id: Optional[str] = None

    def __post_init__(self):
        self.completed_course_ids = set(self.completed_course_ids)

    def has_completed(self, course_id: str) -> bool:
        return course_id in self.completed_course_ids

    def to_json(self) -> dict:
        return {
            'student_id': self.student_id,
            'completed_course_ids': sorted(self.completed_course_ids),
            'active_session_id': self.active_session_id
        }

    @staticmethod
    def from_json(data: dict) -> "StudentProgress":
        return StudentProgress(
            student_id=_require_key(data, 'student_id', 'progress'),
            completed_course_ids=_require_list(data, 'completed_course_ids', 'progress', str),
            active_session_id=data.get('active_session_id')
        )

"""Engine data structures."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Set

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")
ATTENDED_STATUSES = frozenset({"present", "late", "excused"})

TEACHER = "teacher"
STUDENT = "student"
INCONCLUSIVE = "inconclusive"
RESPONSIBILITIES = (TEACHER, STUDENT, INCONCLUSIVE)


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    # Documents written by the web app use camelCase keys.
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass
class SubmissionEntry:
    type: str = ""
    question_number: int = 0
    link: Optional[str] = None
    feedback: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return isinstance(self.link, str) and self.link.strip() != ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubmissionEntry":
        raw_number = _pick(data, "question_number", "questionNumber", default=0)
        try:
            question_number = int(raw_number)
        except (TypeError, ValueError):
            question_number = 0
        return cls(
            type=str(_pick(data, "type", default="")),
            question_number=question_number,
            link=_pick(data, "link"),
            feedback=_optional_text(_pick(data, "feedback")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ActivityRecord:
    student_id: str
    date: str
    submissions: List[SubmissionEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityRecord":
        submissions = _pick(data, "submissions", default=[]) or []
        if not isinstance(submissions, list):
            submissions = []
        return cls(
            student_id=str(_pick(data, "student_id", "studentId", "userId")),
            date=str(_pick(data, "date", default="")),
            submissions=[SubmissionEntry.from_dict(item) for item in submissions if isinstance(item, Mapping)],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "date": self.date,
            "submissions": [entry.to_dict() for entry in self.submissions],
        }


@dataclass
class RosterEntry:
    student_id: str
    student_name: str
    student_email: str
    class_id: str
    class_name: str
    teacher_id: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RosterEntry":
        return cls(
            student_id=str(_pick(data, "student_id", "studentId")),
            student_name=str(_pick(data, "student_name", "studentName", default="")),
            student_email=str(_pick(data, "student_email", "studentEmail", default="")),
            class_id=str(_pick(data, "class_id", "classId")),
            class_name=str(_pick(data, "class_name", "className", default="")),
            teacher_id=str(_pick(data, "teacher_id", "teacherId", default="")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RiskRow:
    student_id: str
    student_name: str
    student_email: str
    class_id: str
    class_name: str
    teacher_id: str
    last_submission_date: Optional[date] = None
    days_since_last_submission: Optional[int] = None


@dataclass
class FollowState:
    following_student_ids: Set[str] = field(default_factory=set)
    missing_homework_follow_initialized: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "FollowState":
        if not data:
            return cls()
        ids = _pick(data, "following_student_ids", "followingStudentIds", default=[]) or []
        initialized = _pick(
            data, "missing_homework_follow_initialized", "missingHomeworkFollowInitialized", default=False
        )
        return cls(following_student_ids={str(sid) for sid in ids}, missing_homework_follow_initialized=bool(initialized))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "following_student_ids": sorted(self.following_student_ids),
            "missing_homework_follow_initialized": self.missing_homework_follow_initialized,
        }

    def copy(self) -> "FollowState":
        return FollowState(set(self.following_student_ids), self.missing_homework_follow_initialized)


@dataclass
class AttendanceEntry:
    student_id: str
    status: str
    student_name: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        self.status = str(self.status).strip().lower()
        if self.status not in ATTENDANCE_STATUSES:
            raise ValueError(f"Unknown attendance status '{self.status}' for student {self.student_id}")

    @property
    def attended(self) -> bool:
        return self.status in ATTENDED_STATUSES

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttendanceEntry":
        return cls(
            student_id=str(_pick(data, "student_id", "studentId")),
            status=str(_pick(data, "status", default="")),
            student_name=_optional_text(_pick(data, "student_name", "studentName")),
            notes=_optional_text(_pick(data, "notes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AttendanceRecord:
    support_class_id: str
    date: str
    students: List[AttendanceEntry] = field(default_factory=list)

    def entry_for(self, student_id: str) -> AttendanceEntry | None:
        for entry in self.students:
            if entry.student_id == student_id:
                return entry
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttendanceRecord":
        students = _pick(data, "students", default=[]) or []
        return cls(
            support_class_id=str(_pick(data, "support_class_id", "supportClassId")),
            date=str(_pick(data, "date", default="")),
            students=[AttendanceEntry.from_dict(item) for item in students],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "support_class_id": self.support_class_id,
            "date": self.date,
            "students": [entry.to_dict() for entry in self.students],
        }


@dataclass
class EvaluationRecord:
    student_id: str
    support_class_id: str
    date: str
    attendance_rate: float
    homework_completion_rate: float
    progress_improved: bool
    responsibility: str
    notes: Optional[str] = None
    student_name: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.responsibility not in RESPONSIBILITIES:
            raise ValueError(f"Unknown responsibility '{self.responsibility}'")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvaluationRecord":
        return cls(
            student_id=str(_pick(data, "student_id", "studentId")),
            support_class_id=str(_pick(data, "support_class_id", "supportClassId")),
            date=str(_pick(data, "date", default="")),
            attendance_rate=float(_pick(data, "attendance_rate", "attendanceRate", default=0.0)),
            homework_completion_rate=float(
                _pick(data, "homework_completion_rate", "homeworkCompletionRate", default=0.0)
            ),
            progress_improved=bool(_pick(data, "progress_improved", "progressImproved", default=False)),
            responsibility=str(_pick(data, "responsibility", default=INCONCLUSIVE)),
            notes=_optional_text(_pick(data, "notes")),
            student_name=_optional_text(_pick(data, "student_name", "studentName")),
            id=_optional_text(_pick(data, "id")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RosterFilters:
    """Optional class scope for roster queries; ``"all"`` means no filter."""

    teacher_id: Optional[str] = None
    class_id: Optional[str] = None
    allowed_class_ids: Optional[tuple] = None

    @classmethod
    def build(
        cls,
        teacher_id: str | None = None,
        class_id: str | None = None,
        allowed_class_ids: List[str] | None = None,
    ) -> "RosterFilters":
        def _clean(value: str | None) -> str | None:
            if value is None or str(value).strip() in {"", "all"}:
                return None
            return str(value)

        allowed = tuple(str(cid) for cid in allowed_class_ids) if allowed_class_ids else None
        return cls(teacher_id=_clean(teacher_id), class_id=_clean(class_id), allowed_class_ids=allowed)

    def matches(self, class_id: str, teacher_id: str) -> bool:
        if self.allowed_class_ids and class_id not in self.allowed_class_ids:
            return False
        if self.class_id is not None and class_id != self.class_id:
            return False
        if self.teacher_id is not None and teacher_id != self.teacher_id:
            return False
        return True

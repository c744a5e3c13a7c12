"""Boundary contracts for the stores the engine reads and writes."""

from __future__ import annotations

from datetime import date
from typing import Callable, List, Optional, Protocol, runtime_checkable

from engagepulse.types import (
    ActivityRecord,
    AttendanceRecord,
    EvaluationRecord,
    FollowState,
    RosterEntry,
    RosterFilters,
)

FollowMutation = Callable[[FollowState], Optional[FollowState]]


class ActivityStore(Protocol):
    def fetch_activity_records(self, student_id: str) -> List[ActivityRecord]:
        """Return every activity record of a student, in any order."""
        ...


@runtime_checkable
class BoundedActivityStore(Protocol):
    def fetch_activity_since(self, since: date) -> List[ActivityRecord]:
        """Return all students' records dated on or after ``since``."""
        ...


class RosterStore(Protocol):
    def fetch_class_roster(self, filters: RosterFilters) -> List[RosterEntry]:
        ...


class FollowStore(Protocol):
    def get_follow_state(self, user_id: str) -> FollowState:
        ...

    def set_follow_state(self, user_id: str, state: FollowState) -> bool:
        ...

    def update_follow_state(self, user_id: str, mutate: FollowMutation) -> FollowState:
        """Apply ``mutate`` to the stored state as one atomic read-check-write.

        ``mutate`` receives a copy of the current state and returns the new
        state, or ``None`` to leave the stored state untouched. The stored
        (post-write) state is returned.
        """
        ...


class AttendanceStore(Protocol):
    def fetch_attendance_records(self, support_class_id: str) -> List[AttendanceRecord]:
        """Return attendance of a support class; raise ``NotFound`` for unknown classes."""
        ...


class EvaluationStore(Protocol):
    def persist_evaluation(self, record: EvaluationRecord) -> str:
        ...

    def list_evaluations(
        self, support_class_id: str, student_id: str | None = None
    ) -> List[EvaluationRecord]:
        ...

    def update_evaluation_notes(self, evaluation_id: str, notes: str) -> EvaluationRecord:
        ...


class StudentDirectory(Protocol):
    def student_exists(self, student_id: str) -> bool:
        ...

"""In-memory store implementing every engine boundary."""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List

from engagepulse.errors import NotFound
from engagepulse.stores.protocols import FollowMutation
from engagepulse.types import (
    ActivityRecord,
    AttendanceRecord,
    EvaluationRecord,
    FollowState,
    RosterEntry,
    RosterFilters,
)


class InMemoryStore:
    """Process-local store; every mutation happens under one lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._activity: Dict[tuple, ActivityRecord] = {}
        self._roster: List[RosterEntry] = []
        self._follow: Dict[str, FollowState] = {}
        self._support_classes: set = set()
        self._students: set = set()
        self._attendance: Dict[tuple, AttendanceRecord] = {}
        self._evaluations: Dict[str, EvaluationRecord] = {}

    # Activity
    def put_activity(self, record: ActivityRecord) -> None:
        """Insert or overwrite the record for (student, date)."""
        with self._lock:
            self._activity[(record.student_id, record.date)] = record

    def fetch_activity_records(self, student_id: str) -> List[ActivityRecord]:
        with self._lock:
            return [rec for (sid, _), rec in self._activity.items() if sid == student_id]

    def fetch_activity_since(self, since: date) -> List[ActivityRecord]:
        since_key = since.isoformat()
        with self._lock:
            return [rec for rec in self._activity.values() if rec.date >= since_key]

    # Roster
    def add_roster_entries(self, entries: Iterable[RosterEntry]) -> None:
        with self._lock:
            entries = list(entries)
            self._roster.extend(entries)
            self._students.update(entry.student_id for entry in entries)

    def fetch_class_roster(self, filters: RosterFilters) -> List[RosterEntry]:
        with self._lock:
            return [entry for entry in self._roster if filters.matches(entry.class_id, entry.teacher_id)]

    # Students
    def add_students(self, student_ids: Iterable[str]) -> None:
        """Register students that are not enrolled in any class."""
        with self._lock:
            self._students.update(student_ids)

    def student_exists(self, student_id: str) -> bool:
        with self._lock:
            return student_id in self._students

    # Follow state
    def get_follow_state(self, user_id: str) -> FollowState:
        with self._lock:
            state = self._follow.get(user_id)
            return state.copy() if state else FollowState()

    def set_follow_state(self, user_id: str, state: FollowState) -> bool:
        with self._lock:
            self._follow[user_id] = state.copy()
        return True

    def update_follow_state(self, user_id: str, mutate: FollowMutation) -> FollowState:
        with self._lock:
            current = self.get_follow_state(user_id)
            updated = mutate(current.copy())
            if updated is None:
                return current
            self._follow[user_id] = updated.copy()
            return updated.copy()

    # Attendance
    def add_support_class(self, support_class_id: str) -> None:
        with self._lock:
            self._support_classes.add(support_class_id)

    def put_attendance(self, record: AttendanceRecord) -> None:
        with self._lock:
            self._support_classes.add(record.support_class_id)
            self._attendance[(record.support_class_id, record.date)] = record

    def fetch_attendance_records(self, support_class_id: str) -> List[AttendanceRecord]:
        with self._lock:
            if support_class_id not in self._support_classes:
                raise NotFound(f"Support class {support_class_id} not found")
            records = [rec for (cid, _), rec in self._attendance.items() if cid == support_class_id]
        return sorted(records, key=lambda rec: rec.date)

    # Evaluations
    def persist_evaluation(self, record: EvaluationRecord) -> str:
        evaluation_id = uuid.uuid4().hex
        with self._lock:
            self._evaluations[evaluation_id] = replace(record, id=evaluation_id)
        return evaluation_id

    def list_evaluations(self, support_class_id: str, student_id: str | None = None) -> List[EvaluationRecord]:
        with self._lock:
            records = [
                rec
                for rec in self._evaluations.values()
                if rec.support_class_id == support_class_id and (student_id is None or rec.student_id == student_id)
            ]
        return sorted(records, key=lambda rec: rec.date, reverse=True)

    def update_evaluation_notes(self, evaluation_id: str, notes: str) -> EvaluationRecord:
        with self._lock:
            record = self._evaluations.get(evaluation_id)
            if record is None:
                raise NotFound(f"Evaluation {evaluation_id} not found")
            updated = replace(record, notes=notes)
            self._evaluations[evaluation_id] = updated
            return updated

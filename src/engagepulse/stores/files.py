"""JSON-directory store used by the command line scripts."""

from __future__ import annotations

import json
import os
import threading
import uuid
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List

from engagepulse.errors import NotFound, SourceUnavailable
from engagepulse.stores.protocols import FollowMutation
from engagepulse.types import (
    ActivityRecord,
    AttendanceRecord,
    EvaluationRecord,
    FollowState,
    RosterEntry,
    RosterFilters,
)

ACTIVITY_FILE = "activity.json"
CLASSES_FILE = "classes.json"
ATTENDANCE_FILE = "attendance.json"
FOLLOW_FILE = "follow.json"
EVALUATIONS_FILE = "evaluations.json"


class JsonDirectoryStore:
    """Documents kept as JSON files in one directory.

    ``classes.json`` holds a list of classes, each with ``id``, ``name``,
    ``teacher_id`` and ``students`` (``id``, ``name``, ``email``).
    ``attendance.json`` maps support class ids to lists of attendance records.
    Writes go through a temporary file and ``os.replace``.
    """

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def _read(self, name: str, default: Any) -> Any:
        path = self.data_dir / name
        if not path.exists():
            return default
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise SourceUnavailable(f"Could not read {path}: {exc}") from exc

    def _write(self, name: str, payload: Any) -> None:
        path = self.data_dir / name
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise SourceUnavailable(f"Could not write {path}: {exc}") from exc

    # Activity
    def _activity(self) -> List[ActivityRecord]:
        return [ActivityRecord.from_dict(item) for item in self._read(ACTIVITY_FILE, [])]

    def fetch_activity_records(self, student_id: str) -> List[ActivityRecord]:
        return [rec for rec in self._activity() if rec.student_id == student_id]

    def fetch_activity_since(self, since: date) -> List[ActivityRecord]:
        since_key = since.isoformat()
        return [rec for rec in self._activity() if rec.date >= since_key]

    def put_activity(self, record: ActivityRecord) -> None:
        with self._lock:
            records = [rec for rec in self._activity() if (rec.student_id, rec.date) != (record.student_id, record.date)]
            records.append(record)
            self._write(ACTIVITY_FILE, [rec.to_dict() for rec in records])

    # Roster
    def fetch_class_roster(self, filters: RosterFilters) -> List[RosterEntry]:
        entries: List[RosterEntry] = []
        for class_doc in self._read(CLASSES_FILE, []):
            class_id = str(class_doc.get("id"))
            teacher_id = str(class_doc.get("teacher_id") or class_doc.get("teacherId") or "")
            if not filters.matches(class_id, teacher_id):
                continue
            for student in class_doc.get("students") or []:
                entries.append(
                    RosterEntry(
                        student_id=str(student.get("id")),
                        student_name=str(student.get("name") or ""),
                        student_email=str(student.get("email") or ""),
                        class_id=class_id,
                        class_name=str(class_doc.get("name") or ""),
                        teacher_id=teacher_id,
                    )
                )
        return entries

    def student_exists(self, student_id: str) -> bool:
        return any(
            str(student.get("id")) == student_id
            for class_doc in self._read(CLASSES_FILE, [])
            for student in class_doc.get("students") or []
        )

    # Follow state
    def get_follow_state(self, user_id: str) -> FollowState:
        return FollowState.from_dict(self._read(FOLLOW_FILE, {}).get(user_id))

    def set_follow_state(self, user_id: str, state: FollowState) -> bool:
        with self._lock:
            payload = self._read(FOLLOW_FILE, {})
            payload[user_id] = state.to_dict()
            self._write(FOLLOW_FILE, payload)
        return True

    def update_follow_state(self, user_id: str, mutate: FollowMutation) -> FollowState:
        with self._lock:
            payload = self._read(FOLLOW_FILE, {})
            current = FollowState.from_dict(payload.get(user_id))
            updated = mutate(current.copy())
            if updated is None:
                return current
            payload[user_id] = updated.to_dict()
            self._write(FOLLOW_FILE, payload)
            return updated.copy()

    # Attendance
    def fetch_attendance_records(self, support_class_id: str) -> List[AttendanceRecord]:
        payload: Dict[str, Any] = self._read(ATTENDANCE_FILE, {})
        if support_class_id not in payload:
            raise NotFound(f"Support class {support_class_id} not found")
        records = []
        for item in payload[support_class_id] or []:
            item = dict(item)
            item.setdefault("support_class_id", support_class_id)
            records.append(AttendanceRecord.from_dict(item))
        return sorted(records, key=lambda rec: rec.date)

    # Evaluations
    def _evaluations(self) -> List[EvaluationRecord]:
        return [EvaluationRecord.from_dict(item) for item in self._read(EVALUATIONS_FILE, [])]

    def persist_evaluation(self, record: EvaluationRecord) -> str:
        evaluation_id = uuid.uuid4().hex
        with self._lock:
            records = self._evaluations()
            stored = EvaluationRecord.from_dict({**record.to_dict(), "id": evaluation_id})
            records.append(stored)
            self._write(EVALUATIONS_FILE, [rec.to_dict() for rec in records])
        return evaluation_id

    def list_evaluations(self, support_class_id: str, student_id: str | None = None) -> List[EvaluationRecord]:
        records = [
            rec
            for rec in self._evaluations()
            if rec.support_class_id == support_class_id and (student_id is None or rec.student_id == student_id)
        ]
        return sorted(records, key=lambda rec: rec.date, reverse=True)

    def update_evaluation_notes(self, evaluation_id: str, notes: str) -> EvaluationRecord:
        with self._lock:
            records = self._evaluations()
            for idx, rec in enumerate(records):
                if rec.id == evaluation_id:
                    rec.notes = notes
                    records[idx] = rec
                    self._write(EVALUATIONS_FILE, [item.to_dict() for item in records])
                    return rec
        raise NotFound(f"Evaluation {evaluation_id} not found")


def write_demo_data(data_dir: Path | str, today: date) -> None:
    """Create a small demo dataset relative to ``today``."""
    data_dir = Path(data_dir)

    def _day(offset: int) -> str:
        return (today - timedelta(days=offset)).isoformat()

    def _submission(number: int, link: str | None) -> Dict[str, Any]:
        return {"type": "read_aloud", "question_number": number, "link": link, "feedback": None}

    classes = [
        {
            "id": "class-a",
            "name": "PTE Intensive A",
            "teacher_id": "teacher-1",
            "students": [
                {"id": "s1", "name": "An Nguyen", "email": "an@example.com"},
                {"id": "s2", "name": "Binh Tran", "email": "binh@example.com"},
                {"id": "s3", "name": "Chi Le", "email": "chi@example.com"},
            ],
        },
        {
            "id": "class-b",
            "name": "PTE Foundation B",
            "teacher_id": "teacher-2",
            "students": [
                {"id": "s4", "name": "Dung Pham", "email": "dung@example.com"},
                {"id": "s5", "name": "", "email": "em@example.com"},
            ],
        },
    ]
    activity = [
        {"student_id": "s1", "date": _day(1), "submissions": [_submission(1, "https://example.com/s1/1")]},
        {"student_id": "s2", "date": _day(10), "submissions": [_submission(1, "https://example.com/s2/1")]},
        {"student_id": "s2", "date": _day(3), "submissions": [_submission(2, "   ")]},
        {"student_id": "s4", "date": _day(30), "submissions": [_submission(1, "https://example.com/s4/1")]},
        {"student_id": "s4", "date": _day(20), "submissions": [_submission(1, "https://example.com/s4/2"), _submission(2, "https://example.com/s4/3")]},
        {"student_id": "s5", "date": _day(2), "submissions": [_submission(1, "https://example.com/s5/1")]},
    ]
    attendance = {
        "support-1": [
            {
                "date": _day(14),
                "students": [
                    {"student_id": "s2", "student_name": "Binh Tran", "status": "present"},
                    {"student_id": "s4", "student_name": "Dung Pham", "status": "absent"},
                ],
            },
            {
                "date": _day(7),
                "students": [
                    {"student_id": "s2", "student_name": "Binh Tran", "status": "late"},
                    {"student_id": "s4", "student_name": "Dung Pham", "status": "present"},
                ],
            },
        ]
    }

    store = JsonDirectoryStore(data_dir)
    store._write(CLASSES_FILE, classes)
    store._write(ACTIVITY_FILE, activity)
    store._write(ATTENDANCE_FILE, attendance)
    print(f"Demo data written to {data_dir}")

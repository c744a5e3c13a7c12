"""Attendance and homework-completion roll-ups for support-class evaluations."""

from __future__ import annotations

from typing import Iterable, List

import pandas as pd

from engagepulse.activity.scanner import activity_frame, count_valid_submissions
from engagepulse.types import ActivityRecord, AttendanceRecord

ATTENDANCE_COLUMNS = ["session", "date", "student_id", "status", "attended"]


def attendance_frame(records: Iterable[AttendanceRecord]) -> pd.DataFrame:
    """One row per (session, student), using the student's first entry in a session."""
    rows = []
    for session, record in enumerate(records):
        seen = set()
        for entry in record.students:
            if entry.student_id in seen:
                continue
            seen.add(entry.student_id)
            rows.append(
                {
                    "session": session,
                    "date": record.date,
                    "student_id": entry.student_id,
                    "status": entry.status,
                    "attended": entry.attended,
                }
            )
    return pd.DataFrame(rows, columns=ATTENDANCE_COLUMNS)


def attendance_rate(records: Iterable[AttendanceRecord], student_id: str) -> float:
    """Share of the student's sessions marked present, late or excused.

    Only sessions where the student appears count; no sessions gives 0.0.
    """
    frame = attendance_frame(records)
    sessions = frame[frame["student_id"] == student_id]
    if sessions.empty:
        return 0.0
    return float(sessions["attended"].astype(bool).sum()) / len(sessions)


def homework_completion_rate(records: Iterable[ActivityRecord]) -> float:
    total = 0
    completed = 0
    for record in records:
        total += len(record.submissions)
        completed += count_valid_submissions(record)
    if total == 0:
        return 0.0
    return completed / total


def completion_series(records: Iterable[ActivityRecord]) -> List[int]:
    """Chronological per-date counts of valid submissions (dates with none are skipped)."""
    frame = activity_frame(records)
    completed = frame[frame["completed"] > 0]
    if completed.empty:
        return []
    per_date = completed.groupby("date")["completed"].sum().sort_index()
    return [int(value) for value in per_date.tolist()]

"""Missing-homework classification over roster rows and a ledger scan."""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List

import pandas as pd

from engagepulse.activity.scanner import LedgerScan
from engagepulse.types import RiskRow, RosterEntry, RosterFilters

RISK_COLUMNS = [
    "student_id",
    "student_name",
    "student_email",
    "class_id",
    "class_name",
    "teacher_id",
    "last_submission_date",
    "days_since_last_submission",
]


def filter_roster(entries: Iterable[RosterEntry], filters: RosterFilters) -> List[RosterEntry]:
    return [entry for entry in entries if filters.matches(entry.class_id, entry.teacher_id)]


def _display_name(entry: RosterEntry) -> str:
    return entry.student_name or entry.student_email or "Unknown Student"


def unique_students(entries: Iterable[RosterEntry]) -> List[RosterEntry]:
    """One entry per student, keeping the first matching class in roster order."""
    seen: Dict[str, RosterEntry] = {}
    for entry in entries:
        if entry.student_id in seen:
            continue
        seen[entry.student_id] = RosterEntry(
            student_id=entry.student_id,
            student_name=_display_name(entry),
            student_email=entry.student_email or "",
            class_id=entry.class_id,
            class_name=entry.class_name or f"Class {entry.class_id}",
            teacher_id=entry.teacher_id,
        )
    return list(seen.values())


def days_between(earlier: date, today: date) -> int:
    return max(0, (today - earlier).days)


def sort_by_severity(rows: List[RiskRow]) -> List[RiskRow]:
    """Never-submitted first, then most days since last submission; stable."""
    return sorted(
        rows,
        key=lambda row: (
            row.days_since_last_submission is not None,
            -(row.days_since_last_submission or 0),
        ),
    )


def classify_missing_homework(entries: Iterable[RosterEntry], scan: LedgerScan, today: date) -> List[RiskRow]:
    rows: List[RiskRow] = []
    for entry in unique_students(entries):
        if scan.is_active(entry.student_id):
            continue
        last = scan.last_submission.get(entry.student_id)
        rows.append(
            RiskRow(
                student_id=entry.student_id,
                student_name=entry.student_name,
                student_email=entry.student_email,
                class_id=entry.class_id,
                class_name=entry.class_name,
                teacher_id=entry.teacher_id,
                last_submission_date=last,
                days_since_last_submission=days_between(last, today) if last is not None else None,
            )
        )
    return sort_by_severity(rows)


def search_rows(rows: Iterable[RiskRow], term: str, teacher_names: Dict[str, str] | None = None) -> List[RiskRow]:
    """Case-insensitive match on student name, email, class name or teacher name."""
    rows = list(rows)
    needle = (term or "").strip().lower()
    if not needle:
        return rows
    teacher_names = teacher_names or {}
    return [
        row
        for row in rows
        if needle in row.student_name.lower()
        or needle in row.student_email.lower()
        or needle in row.class_name.lower()
        or needle in teacher_names.get(row.teacher_id, "").lower()
    ]


def risk_rows_frame(rows: Iterable[RiskRow]) -> pd.DataFrame:
    records = [
        {
            "student_id": row.student_id,
            "student_name": row.student_name,
            "student_email": row.student_email,
            "class_id": row.class_id,
            "class_name": row.class_name,
            "teacher_id": row.teacher_id,
            "last_submission_date": row.last_submission_date.isoformat() if row.last_submission_date else None,
            "days_since_last_submission": row.days_since_last_submission,
        }
        for row in rows
    ]
    df = pd.DataFrame(records, columns=RISK_COLUMNS)
    df["days_since_last_submission"] = df["days_since_last_submission"].astype("Int64")
    df["queue_rank"] = range(1, len(df) + 1)
    return df

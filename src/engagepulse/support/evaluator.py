"""Support-class evaluations: aggregate, classify and append to the evaluation store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from functools import partial
from typing import Any, Dict, Iterable, List

import pandas as pd

from engagepulse.config import today_in_timezone
from engagepulse.errors import NotFound, SourceUnavailable, TransientStoreError
from engagepulse.retry import call_with_retries, retry_policy
from engagepulse.stores.protocols import ActivityStore, AttendanceStore, EvaluationStore, StudentDirectory
from engagepulse.support.aggregate import attendance_rate, completion_series, homework_completion_rate
from engagepulse.support.responsibility import ResponsibilityInputs, classify_responsibility, thresholds_from_config
from engagepulse.support.trend import progress_improved
from engagepulse.types import RESPONSIBILITIES, ActivityRecord, AttendanceRecord, EvaluationRecord

logger = logging.getLogger(__name__)

EVALUATION_COLUMNS = [
    "id",
    "date",
    "support_class_id",
    "student_id",
    "student_name",
    "attendance_rate",
    "homework_completion_rate",
    "progress_improved",
    "responsibility",
    "notes",
]


def build_evaluation(
    student_id: str,
    support_class_id: str,
    attendance: List[AttendanceRecord],
    activity: List[ActivityRecord],
    evaluated_on: date,
    cfg: Dict[str, Any],
    student_name: str | None = None,
    notes: str | None = None,
) -> EvaluationRecord:
    inputs = ResponsibilityInputs(
        attendance_rate=attendance_rate(attendance, student_id),
        homework_completion_rate=homework_completion_rate(activity),
        progress_improved=progress_improved(completion_series(activity)),
    )
    return EvaluationRecord(
        student_id=student_id,
        support_class_id=support_class_id,
        date=evaluated_on.isoformat(),
        attendance_rate=inputs.attendance_rate,
        homework_completion_rate=inputs.homework_completion_rate,
        progress_improved=inputs.progress_improved,
        responsibility=classify_responsibility(inputs, thresholds_from_config(cfg)),
        notes=notes,
        student_name=student_name,
    )


def _student_names(attendance: Iterable[AttendanceRecord]) -> Dict[str, str | None]:
    names: Dict[str, str | None] = {}
    for record in attendance:
        for entry in record.students:
            if entry.student_id not in names or not names[entry.student_id]:
                names[entry.student_id] = entry.student_name
    return names


@dataclass
class SupportEvaluator:
    activity_store: ActivityStore
    attendance_store: AttendanceStore
    evaluation_store: EvaluationStore
    student_directory: StudentDirectory
    cfg: Dict[str, Any] = field(default_factory=dict)

    def _retry(self, operation, description: str):
        return call_with_retries(operation, retry_policy(self.cfg), description)

    def _attendance(self, support_class_id: str) -> List[AttendanceRecord]:
        return self._retry(
            partial(self.attendance_store.fetch_attendance_records, support_class_id),
            f"attendance fetch for support class {support_class_id}",
        )

    def _activity(self, student_id: str) -> List[ActivityRecord]:
        return self._retry(
            partial(self.activity_store.fetch_activity_records, student_id),
            f"activity fetch for student {student_id}",
        )

    def _require_student(self, student_id: str) -> None:
        exists = self._retry(
            partial(self.student_directory.student_exists, student_id), f"student lookup for {student_id}"
        )
        if not exists:
            raise NotFound(f"Student {student_id} not found")

    def _persist(self, record: EvaluationRecord) -> EvaluationRecord:
        # Appends are not idempotent: one attempt only.
        try:
            record.id = self.evaluation_store.persist_evaluation(record)
        except TransientStoreError as exc:
            raise SourceUnavailable(f"evaluation write for student {record.student_id} failed: {exc}") from exc
        return record

    def evaluate(
        self,
        student_id: str,
        support_class_id: str,
        student_name: str | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> EvaluationRecord:
        """Evaluate one student and append the result to the evaluation store."""
        today = today or today_in_timezone(self.cfg)
        self._require_student(student_id)
        attendance = self._attendance(support_class_id)
        activity = self._activity(student_id)
        if student_name is None:
            student_name = _student_names(attendance).get(student_id)
        record = build_evaluation(
            student_id, support_class_id, attendance, activity, today, self.cfg, student_name=student_name, notes=notes
        )
        record = self._persist(record)
        logger.info(
            "Evaluated %s in %s: responsibility=%s", student_id, support_class_id, record.responsibility
        )
        return record

    def evaluate_class(
        self,
        support_class_id: str,
        student_ids: Iterable[str] | None = None,
        today: date | None = None,
    ) -> List[EvaluationRecord]:
        """Evaluate a whole support class.

        Every student is looked up and every evaluation computed before anything
        is written, so an unknown student or a read failure aborts the batch
        with nothing persisted.
        """
        today = today or today_in_timezone(self.cfg)
        attendance = self._attendance(support_class_id)
        names = _student_names(attendance)
        ids = list(dict.fromkeys(student_ids)) if student_ids is not None else list(names)
        for sid in ids:
            self._require_student(sid)

        computed = [
            build_evaluation(
                sid, support_class_id, attendance, self._activity(sid), today, self.cfg, student_name=names.get(sid)
            )
            for sid in ids
        ]
        return [self._persist(record) for record in computed]

    def student_evaluations(self, student_id: str, support_class_id: str) -> List[EvaluationRecord]:
        records = self._retry(
            partial(self.evaluation_store.list_evaluations, support_class_id, student_id),
            f"evaluation history for student {student_id}",
        )
        return sorted(records, key=lambda rec: rec.date, reverse=True)

    def class_evaluations(self, support_class_id: str) -> List[EvaluationRecord]:
        records = self._retry(
            partial(self.evaluation_store.list_evaluations, support_class_id),
            f"evaluation history for support class {support_class_id}",
        )
        return sorted(records, key=lambda rec: rec.date, reverse=True)

    def update_notes(self, evaluation_id: str, notes: str) -> EvaluationRecord:
        return self._retry(
            partial(self.evaluation_store.update_evaluation_notes, evaluation_id, notes),
            f"notes update for evaluation {evaluation_id}",
        )


def evaluations_frame(records: Iterable[EvaluationRecord]) -> pd.DataFrame:
    return pd.DataFrame([record.to_dict() for record in records], columns=EVALUATION_COLUMNS)


def responsibility_summary(records: Iterable[EvaluationRecord]) -> Dict[str, int]:
    frame = evaluations_frame(records)
    counts = frame["responsibility"].value_counts().to_dict()
    return {label: int(counts.get(label, 0)) for label in RESPONSIBILITIES}

"""Tests for support-class evaluations."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

import pytest

from engagepulse.errors import NotFound, SourceUnavailable, TransientStoreError
from engagepulse.stores.memory import InMemoryStore
from engagepulse.support.evaluator import (
    EVALUATION_COLUMNS,
    SupportEvaluator,
    build_evaluation,
    evaluations_frame,
    responsibility_summary,
)
from engagepulse.types import (
    INCONCLUSIVE,
    STUDENT,
    TEACHER,
    ActivityRecord,
    AttendanceEntry,
    AttendanceRecord,
    EvaluationRecord,
    SubmissionEntry,
)

TODAY = date(2026, 3, 15)


def _cfg() -> dict:
    return {"retry": {"max_attempts": 1}}


def _day(offset: int) -> str:
    return (TODAY - timedelta(days=offset)).isoformat()


def _activity(student_id: str, offset: int, valid: int, blank: int = 0) -> ActivityRecord:
    links = [f"https://example.com/{student_id}/{offset}/{i}" for i in range(valid)] + [""] * blank
    return ActivityRecord(
        student_id=student_id,
        date=_day(offset),
        submissions=[SubmissionEntry(type="essay", question_number=i + 1, link=link) for i, link in enumerate(links)],
    )


def _store() -> InMemoryStore:
    store = InMemoryStore()
    for offset in (28, 21, 14, 7, 0):
        store.put_attendance(
            AttendanceRecord(
                support_class_id="support-1",
                date=_day(offset),
                students=[
                    AttendanceEntry("diligent", "present", student_name="Diligent Dao"),
                    AttendanceEntry("absent", "absent" if offset else "present", student_name="Absent An"),
                ],
            )
        )
    for offset in (5, 4, 3, 2, 1):
        store.put_activity(_activity("diligent", offset, valid=1))
        store.put_activity(_activity("absent", offset, valid=1))
    store.add_students(["diligent", "absent", "newcomer"])
    return store


class FailingActivityStore(InMemoryStore):
    def __init__(self, broken_student: str) -> None:
        super().__init__()
        self.broken_student = broken_student

    def fetch_activity_records(self, student_id: str) -> List[ActivityRecord]:
        if student_id == self.broken_student:
            raise SourceUnavailable("activity store offline")
        return super().fetch_activity_records(student_id)


def _evaluator(store: InMemoryStore) -> SupportEvaluator:
    return SupportEvaluator(
        activity_store=store, attendance_store=store, evaluation_store=store, student_directory=store, cfg=_cfg()
    )


def test_flat_progress_with_full_attendance_points_at_teacher() -> None:
    store = _store()

    record = _evaluator(store).evaluate("diligent", "support-1", today=TODAY)

    assert record.id
    assert record.attendance_rate == 1.0
    assert record.homework_completion_rate == 1.0
    assert record.progress_improved is False
    assert record.responsibility == TEACHER
    assert record.student_name == "Diligent Dao"
    assert record.date == TODAY.isoformat()
    assert [r.id for r in store.list_evaluations("support-1", "diligent")] == [record.id]


def test_low_attendance_points_at_student() -> None:
    record = _evaluator(_store()).evaluate("absent", "support-1", notes="Called parents", today=TODAY)

    assert record.attendance_rate == pytest.approx(0.2)
    assert record.responsibility == STUDENT
    assert record.notes == "Called parents"


def test_student_without_sessions_gets_zero_rate() -> None:
    record = _evaluator(_store()).evaluate("newcomer", "support-1", today=TODAY)

    assert record.attendance_rate == 0.0
    assert record.homework_completion_rate == 0.0
    assert record.responsibility == STUDENT


def test_unknown_support_class_raises_not_found() -> None:
    store = _store()

    with pytest.raises(NotFound):
        _evaluator(store).evaluate("diligent", "missing-class", today=TODAY)
    assert store.list_evaluations("missing-class") == []


def test_improving_student_is_inconclusive() -> None:
    store = _store()
    store.put_activity(_activity("diligent", 0, valid=4))

    record = _evaluator(store).evaluate("diligent", "support-1", today=TODAY)

    assert record.progress_improved is True
    assert record.responsibility == INCONCLUSIVE


def test_build_evaluation_uses_configured_thresholds() -> None:
    store = _store()
    attendance = store.fetch_attendance_records("support-1")
    activity = store.fetch_activity_records("absent")
    cfg = {"support": {"attendance_threshold": 0.1, "completion_threshold": 0.5}}

    record = build_evaluation("absent", "support-1", attendance, activity, TODAY, cfg)

    assert record.responsibility == TEACHER
    assert record.id is None


def test_evaluate_class_covers_every_attendee() -> None:
    store = _store()

    records = _evaluator(store).evaluate_class("support-1", today=TODAY)

    assert [r.student_id for r in records] == ["diligent", "absent"]
    assert all(r.id for r in records)
    assert len(store.list_evaluations("support-1")) == 2


def test_evaluate_class_read_failure_persists_nothing() -> None:
    store = FailingActivityStore("absent")
    store.add_students(["diligent", "absent"])
    for record in _store().fetch_attendance_records("support-1"):
        store.put_attendance(record)

    with pytest.raises(SourceUnavailable):
        _evaluator(store).evaluate_class("support-1", today=TODAY)
    assert store.list_evaluations("support-1") == []


def test_history_is_newest_first_and_notes_update() -> None:
    store = _store()
    evaluator = _evaluator(store)
    older = evaluator.evaluate("diligent", "support-1", today=TODAY - timedelta(days=7))
    newer = evaluator.evaluate("diligent", "support-1", today=TODAY)
    evaluator.evaluate("absent", "support-1", today=TODAY)

    history = evaluator.student_evaluations("diligent", "support-1")
    assert [r.id for r in history] == [newer.id, older.id]
    assert len(evaluator.class_evaluations("support-1")) == 3

    updated = evaluator.update_notes(older.id, "Switch teaching approach")
    assert updated.notes == "Switch teaching approach"
    assert evaluator.student_evaluations("diligent", "support-1")[1].notes == "Switch teaching approach"

    with pytest.raises(NotFound):
        evaluator.update_notes("nope", "text")


def test_evaluation_frame_and_summary() -> None:
    store = _store()
    records = _evaluator(store).evaluate_class("support-1", today=TODAY)

    df = evaluations_frame(records)
    assert list(df.columns) == EVALUATION_COLUMNS
    assert responsibility_summary(records) == {TEACHER: 1, STUDENT: 1, INCONCLUSIVE: 0}
    assert responsibility_summary([]) == {TEACHER: 0, STUDENT: 0, INCONCLUSIVE: 0}


class FlakyEvaluationStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.persist_calls = 0

    def persist_evaluation(self, record: EvaluationRecord) -> str:
        self.persist_calls += 1
        raise TransientStoreError("write timed out")


def test_unknown_student_raises_not_found_and_persists_nothing() -> None:
    store = _store()
    evaluator = _evaluator(store)

    with pytest.raises(NotFound):
        evaluator.evaluate("ghost", "support-1", today=TODAY)
    with pytest.raises(NotFound):
        evaluator.evaluate_class("support-1", student_ids=["diligent", "ghost"], today=TODAY)
    assert store.list_evaluations("support-1") == []


def test_evaluation_write_is_attempted_once() -> None:
    store = FlakyEvaluationStore()
    for record in _store().fetch_attendance_records("support-1"):
        store.put_attendance(record)
    store.add_students(["diligent"])
    evaluator = SupportEvaluator(
        activity_store=store,
        attendance_store=store,
        evaluation_store=store,
        student_directory=store,
        cfg={"retry": {"max_attempts": 5, "initial_delay_seconds": 0, "max_delay_seconds": 0}},
    )

    with pytest.raises(SourceUnavailable):
        evaluator.evaluate("diligent", "support-1", today=TODAY)
    assert store.persist_calls == 1

"""Tests for the JSON-directory, HTTP and configured stores."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List

import pytest
import requests

from engagepulse.activity.service import MissingHomeworkService
from engagepulse.errors import NotFound, SourceUnavailable, TransientStoreError
from engagepulse.retry import RetryPolicy, call_with_retries
from engagepulse.stores import rest as rest_store
from engagepulse.stores.factory import build_store
from engagepulse.stores.files import JsonDirectoryStore, write_demo_data
from engagepulse.stores.memory import InMemoryStore
from engagepulse.stores.rest import RestStore
from engagepulse.support.evaluator import SupportEvaluator
from engagepulse.types import STUDENT, EvaluationRecord, FollowState, RosterFilters

TODAY = date(2026, 3, 15)


def _cfg() -> dict:
    return {"retry": {"max_attempts": 1}, "engine": {"max_workers": 2}}


def _demo_store(tmp_path) -> JsonDirectoryStore:
    write_demo_data(tmp_path, TODAY)
    return JsonDirectoryStore(tmp_path)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, headers: Dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def test_demo_data_drives_missing_homework(tmp_path) -> None:
    store = _demo_store(tmp_path)
    service = MissingHomeworkService(roster_store=store, activity_store=store, cfg=_cfg())

    rows = service.find_at_risk(lookback=7, today=TODAY)

    assert [row.student_id for row in rows] == ["s3", "s4", "s2"]
    assert [row.days_since_last_submission for row in rows] == [None, 20, 10]
    assert rows[1].class_name == "PTE Foundation B"


def test_demo_roster_respects_filters(tmp_path) -> None:
    store = _demo_store(tmp_path)

    roster = store.fetch_class_roster(RosterFilters.build(teacher_id="teacher-2"))

    assert [entry.student_id for entry in roster] == ["s4", "s5"]
    assert roster[1].student_name == ""


def test_demo_attendance_evaluates_support_class(tmp_path) -> None:
    store = _demo_store(tmp_path)
    evaluator = SupportEvaluator(
        activity_store=store, attendance_store=store, evaluation_store=store, student_directory=store, cfg=_cfg()
    )

    records = evaluator.evaluate_class("support-1", today=TODAY)

    by_student = {record.student_id: record for record in records}
    assert by_student["s2"].attendance_rate == 1.0
    assert by_student["s2"].homework_completion_rate == pytest.approx(0.5)
    assert by_student["s4"].attendance_rate == pytest.approx(0.5)
    assert {record.responsibility for record in records} == {STUDENT}
    assert len(JsonDirectoryStore(tmp_path).list_evaluations("support-1")) == 2


def test_unknown_support_class_in_files_store(tmp_path) -> None:
    store = _demo_store(tmp_path)

    with pytest.raises(NotFound):
        store.fetch_attendance_records("support-9")


def test_follow_state_survives_new_store_instance(tmp_path) -> None:
    JsonDirectoryStore(tmp_path).update_follow_state(
        "u1", lambda state: FollowState({"s1", "s2"}, missing_homework_follow_initialized=True)
    )

    state = JsonDirectoryStore(tmp_path).get_follow_state("u1")

    assert state.following_student_ids == {"s1", "s2"}
    assert state.missing_homework_follow_initialized
    assert JsonDirectoryStore(tmp_path).get_follow_state("someone-else") == FollowState()


def test_evaluation_notes_update_in_files_store(tmp_path) -> None:
    store = JsonDirectoryStore(tmp_path)
    record = EvaluationRecord("s1", "support-1", TODAY.isoformat(), 0.5, 0.5, False, STUDENT)

    evaluation_id = store.persist_evaluation(record)
    updated = store.update_evaluation_notes(evaluation_id, "Needs a study plan")

    assert updated.notes == "Needs a study plan"
    assert store.list_evaluations("support-1", "s1")[0].notes == "Needs a study plan"
    with pytest.raises(NotFound):
        store.update_evaluation_notes("missing", "x")


def test_corrupt_file_is_source_unavailable(tmp_path) -> None:
    (tmp_path / "activity.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(SourceUnavailable):
        JsonDirectoryStore(tmp_path).fetch_activity_records("s1")


def test_files_store_bounded_query(tmp_path) -> None:
    store = _demo_store(tmp_path)

    recent = store.fetch_activity_since(TODAY - timedelta(days=3))

    assert sorted((rec.student_id, rec.date) for rec in recent) == [
        ("s1", (TODAY - timedelta(days=1)).isoformat()),
        ("s2", (TODAY - timedelta(days=3)).isoformat()),
        ("s5", (TODAY - timedelta(days=2)).isoformat()),
    ]


def test_rest_store_reads_camel_case_activity(monkeypatch) -> None:
    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        assert url == "https://api.example.com/v1/students/s1/activity"
        assert headers["Authorization"] == "Bearer secret"
        return FakeResponse(
            payload=[
                {
                    "userId": "s1",
                    "date": "2026-03-10",
                    "submissions": [{"type": "essay", "questionNumber": 2, "link": "https://x"}],
                }
            ]
        )

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    store = RestStore(endpoint="https://api.example.com/v1/", token="secret")

    records = store.fetch_activity_records("s1")

    assert records[0].student_id == "s1"
    assert records[0].submissions[0].question_number == 2
    assert records[0].submissions[0].is_valid


def test_rest_store_maps_http_errors(monkeypatch) -> None:
    responses = {
        "activity": FakeResponse(status_code=503),
        "support-classes/x/attendance": FakeResponse(status_code=404),
        "roster": FakeResponse(status_code=400),
    }

    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        return responses[url.split("/v1/", 1)[1]]

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    store = RestStore(endpoint="https://api.example.com/v1")

    with pytest.raises(TransientStoreError):
        store.fetch_activity_since(TODAY)
    with pytest.raises(NotFound):
        store.fetch_attendance_records("x")
    with pytest.raises(SourceUnavailable):
        store.fetch_class_roster(RosterFilters())


def test_rest_store_connection_error_is_transient(monkeypatch) -> None:
    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(rest_store.requests, "get", fake_get)

    with pytest.raises(TransientStoreError):
        RestStore(endpoint="https://api.example.com").fetch_activity_records("s1")


def test_rest_store_roster_passes_filters(monkeypatch) -> None:
    seen: List[dict] = []

    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        seen.append(params)
        return FakeResponse(payload=[{"studentId": "s1", "classId": "c1", "teacherId": "t1"}])

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    filters = RosterFilters.build(teacher_id="t1", allowed_class_ids=["c1", "c2"])

    roster = RestStore(endpoint="https://api.example.com").fetch_class_roster(filters)

    assert seen == [{"teacher_id": "t1", "allowed_class_ids": "c1,c2"}]
    assert roster[0].class_id == "c1"


def test_rest_follow_update_retries_on_precondition_failure(monkeypatch) -> None:
    versions = [
        ({"following_student_ids": ["a"], "missing_homework_follow_initialized": True}, '"v1"'),
        ({"following_student_ids": ["a", "z"], "missing_homework_follow_initialized": True}, '"v2"'),
    ]
    puts: List[Dict[str, Any]] = []

    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        payload, etag = versions[min(len(puts), 1)]
        return FakeResponse(payload=payload, headers={"ETag": etag})

    def fake_put(url: str, json=None, headers=None, timeout=None) -> FakeResponse:
        puts.append({"json": json, "if_match": headers.get("If-Match")})
        return FakeResponse(status_code=412 if len(puts) == 1 else 200, payload={})

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    monkeypatch.setattr(rest_store.requests, "put", fake_put)

    def _add_b(state: FollowState) -> FollowState:
        state.following_student_ids.add("b")
        return state

    state = RestStore(endpoint="https://api.example.com").update_follow_state("u1", _add_b)

    assert state.following_student_ids == {"a", "b", "z"}
    assert [put["if_match"] for put in puts] == ['"v1"', '"v2"']
    assert puts[1]["json"]["following_student_ids"] == ["a", "b", "z"]


def test_rest_follow_update_without_change_skips_write(monkeypatch) -> None:
    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        return FakeResponse(status_code=404)

    def fake_put(url: str, json=None, headers=None, timeout=None) -> FakeResponse:
        raise AssertionError("no write expected")

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    monkeypatch.setattr(rest_store.requests, "put", fake_put)

    state = RestStore(endpoint="https://api.example.com").update_follow_state("u1", lambda state: None)

    assert state == FollowState()


def test_rest_persist_evaluation_returns_id(monkeypatch) -> None:
    def fake_post(url: str, json=None, headers=None, timeout=None) -> FakeResponse:
        assert url == "https://api.example.com/evaluations"
        assert "id" not in json
        assert json["responsibility"] == STUDENT
        return FakeResponse(status_code=201, payload={"id": "ev-1"})

    monkeypatch.setattr(rest_store.requests, "post", fake_post)
    record = EvaluationRecord("s1", "support-1", TODAY.isoformat(), 0.5, 0.5, False, STUDENT)

    assert RestStore(endpoint="https://api.example.com").persist_evaluation(record) == "ev-1"


def test_build_store_backends(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TEST_API_TOKEN", "abc")

    files = build_store({"store": {"backend": "files", "data_dir": str(tmp_path)}})
    rest = build_store({"store": {"backend": "rest", "endpoint": "https://api", "token_env": "TEST_API_TOKEN"}})

    assert isinstance(files, JsonDirectoryStore)
    assert files.data_dir == tmp_path
    assert isinstance(rest, RestStore)
    assert rest.token == "abc"
    assert isinstance(build_store({"store": {"backend": "memory"}}), InMemoryStore)
    with pytest.raises(ValueError):
        build_store({"store": {"backend": "rest"}})
    with pytest.raises(ValueError):
        build_store({"store": {"backend": "sqlite"}})


def test_rest_persist_evaluation_failures_are_not_retryable(monkeypatch) -> None:
    calls: List[str] = []
    outcomes = [requests.Timeout("read timed out"), FakeResponse(status_code=503)]

    def fake_post(url: str, json=None, headers=None, timeout=None) -> FakeResponse:
        calls.append(url)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(rest_store.requests, "post", fake_post)
    store = RestStore(endpoint="https://api.example.com")
    record = EvaluationRecord("s1", "support-1", TODAY.isoformat(), 0.5, 0.5, False, STUDENT)

    with pytest.raises(SourceUnavailable):
        call_with_retries(lambda: store.persist_evaluation(record), RetryPolicy(max_attempts=5), sleep=lambda _: None)
    assert len(calls) == 1

    with pytest.raises(SourceUnavailable):
        store.persist_evaluation(record)
    assert len(calls) == 2


def test_rest_student_lookup(monkeypatch) -> None:
    def fake_get(url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        if url.endswith("/students/s1"):
            return FakeResponse(payload={"id": "s1"})
        return FakeResponse(status_code=404)

    monkeypatch.setattr(rest_store.requests, "get", fake_get)
    store = RestStore(endpoint="https://api.example.com")

    assert store.student_exists("s1")
    assert not store.student_exists("ghost")


def test_files_student_lookup(tmp_path) -> None:
    store = _demo_store(tmp_path)

    assert store.student_exists("s5")
    assert not store.student_exists("ghost")

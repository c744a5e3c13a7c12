"""HTTP JSON store client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List

import requests
from requests import RequestException

from engagepulse.errors import NotFound, SourceUnavailable, TransientStoreError
from engagepulse.stores.protocols import FollowMutation
from engagepulse.types import (
    ActivityRecord,
    AttendanceRecord,
    EvaluationRecord,
    FollowState,
    RosterEntry,
    RosterFilters,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}
PRECONDITION_FAILED = 412


@dataclass
class RestStore:
    """Client for a JSON API exposing the engine's collaborators.

    Endpoints (relative to ``endpoint``):
    ``GET students/{id}/activity``, ``GET activity?since=YYYY-MM-DD``,
    ``GET roster``, ``GET students/{id}``, ``GET|PUT users/{id}/follow-state``,
    ``GET support-classes/{id}/attendance``, ``POST|GET evaluations``,
    ``PATCH evaluations/{id}``.
    """

    endpoint: str
    timeout_seconds: int = 30
    token: str | None = None
    max_precondition_retries: int = 5

    def _url(self, path: str) -> str:
        return f"{self.endpoint.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self, extra: Dict[str, str] | None = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _check(self, response: requests.Response, what: str) -> None:
        if response.status_code == 404:
            raise NotFound(f"{what} not found")
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientStoreError(f"{what} failed with HTTP {response.status_code}")
        try:
            response.raise_for_status()
        except RequestException as exc:
            raise SourceUnavailable(f"{what} failed: {exc}") from exc

    def _json(self, response: requests.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise SourceUnavailable(f"Invalid JSON in {what} response") from exc

    def _get(self, path: str, what: str, params: Dict[str, Any] | None = None) -> Any:
        try:
            response = requests.get(self._url(path), params=params, headers=self._headers(), timeout=self.timeout_seconds)
        except RequestException as exc:
            raise TransientStoreError(f"{what} unreachable at {self.endpoint}: {exc}") from exc
        self._check(response, what)
        return self._json(response, what)

    # Activity
    def fetch_activity_records(self, student_id: str) -> List[ActivityRecord]:
        payload = self._get(f"students/{student_id}/activity", f"activity of student {student_id}")
        return [ActivityRecord.from_dict(item) for item in payload or []]

    def fetch_activity_since(self, since: date) -> List[ActivityRecord]:
        payload = self._get("activity", "recent activity", params={"since": since.isoformat()})
        return [ActivityRecord.from_dict(item) for item in payload or []]

    # Roster
    def fetch_class_roster(self, filters: RosterFilters) -> List[RosterEntry]:
        params: Dict[str, Any] = {}
        if filters.teacher_id:
            params["teacher_id"] = filters.teacher_id
        if filters.class_id:
            params["class_id"] = filters.class_id
        if filters.allowed_class_ids:
            params["allowed_class_ids"] = ",".join(filters.allowed_class_ids)
        payload = self._get("roster", "class roster", params=params)
        return [RosterEntry.from_dict(item) for item in payload or []]

    def student_exists(self, student_id: str) -> bool:
        try:
            self._get(f"students/{student_id}", f"student {student_id}")
        except NotFound:
            return False
        return True

    # Follow state
    def _get_follow(self, user_id: str) -> tuple:
        what = f"follow state of {user_id}"
        try:
            response = requests.get(
                self._url(f"users/{user_id}/follow-state"), headers=self._headers(), timeout=self.timeout_seconds
            )
        except RequestException as exc:
            raise TransientStoreError(f"{what} unreachable at {self.endpoint}: {exc}") from exc
        if response.status_code == 404:
            return FollowState(), None
        self._check(response, what)
        return FollowState.from_dict(self._json(response, what)), response.headers.get("ETag")

    def _put_follow(self, user_id: str, state: FollowState, etag: str | None) -> bool:
        what = f"follow state write for {user_id}"
        extra = {"If-Match": etag} if etag else {"If-None-Match": "*"}
        try:
            response = requests.put(
                self._url(f"users/{user_id}/follow-state"),
                json=state.to_dict(),
                headers=self._headers(extra),
                timeout=self.timeout_seconds,
            )
        except RequestException as exc:
            raise TransientStoreError(f"{what} unreachable at {self.endpoint}: {exc}") from exc
        if response.status_code == PRECONDITION_FAILED:
            return False
        self._check(response, what)
        return True

    def get_follow_state(self, user_id: str) -> FollowState:
        return self._get_follow(user_id)[0]

    def set_follow_state(self, user_id: str, state: FollowState) -> bool:
        try:
            response = requests.put(
                self._url(f"users/{user_id}/follow-state"),
                json=state.to_dict(),
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except RequestException as exc:
            raise TransientStoreError(f"follow state write unreachable at {self.endpoint}: {exc}") from exc
        self._check(response, f"follow state write for {user_id}")
        return True

    def update_follow_state(self, user_id: str, mutate: FollowMutation) -> FollowState:
        # Optimistic concurrency: the write only lands if the document is unchanged.
        for _ in range(self.max_precondition_retries):
            current, etag = self._get_follow(user_id)
            updated = mutate(current.copy())
            if updated is None:
                return current
            if self._put_follow(user_id, updated, etag):
                return updated
            logger.info("Follow state of %s changed concurrently; re-reading", user_id)
        raise TransientStoreError(f"Follow state of {user_id} kept changing during update")

    # Attendance
    def fetch_attendance_records(self, support_class_id: str) -> List[AttendanceRecord]:
        payload = self._get(
            f"support-classes/{support_class_id}/attendance", f"attendance of support class {support_class_id}"
        )
        records = []
        for item in payload or []:
            item = dict(item)
            item.setdefault("support_class_id", support_class_id)
            records.append(AttendanceRecord.from_dict(item))
        return sorted(records, key=lambda rec: rec.date)

    # Evaluations
    def persist_evaluation(self, record: EvaluationRecord) -> str:
        """Append an evaluation; a failed POST is never reported as retryable.

        The server may have stored the record before the connection failed,
        so a retry could append a duplicate.
        """
        what = f"evaluation write for student {record.student_id}"
        payload = record.to_dict()
        payload.pop("id", None)
        try:
            response = requests.post(
                self._url("evaluations"), json=payload, headers=self._headers(), timeout=self.timeout_seconds
            )
        except RequestException as exc:
            raise SourceUnavailable(f"{what} failed at {self.endpoint}: {exc}") from exc
        try:
            self._check(response, what)
        except TransientStoreError as exc:
            raise SourceUnavailable(str(exc)) from exc
        data = self._json(response, what)
        try:
            return str(data["id"])
        except (KeyError, TypeError) as exc:
            raise SourceUnavailable(f"{what} returned no evaluation id") from exc

    def list_evaluations(self, support_class_id: str, student_id: str | None = None) -> List[EvaluationRecord]:
        params = {"support_class_id": support_class_id}
        if student_id is not None:
            params["student_id"] = student_id
        payload = self._get("evaluations", "evaluation history", params=params)
        return [EvaluationRecord.from_dict(item) for item in payload or []]

    def update_evaluation_notes(self, evaluation_id: str, notes: str) -> EvaluationRecord:
        what = f"evaluation {evaluation_id}"
        try:
            response = requests.patch(
                self._url(f"evaluations/{evaluation_id}"),
                json={"notes": notes},
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except RequestException as exc:
            raise TransientStoreError(f"{what} unreachable at {self.endpoint}: {exc}") from exc
        self._check(response, what)
        return EvaluationRecord.from_dict(self._json(response, what))

"""Submission ledger scanning: recent activity and last valid submission per student."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, timedelta
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from engagepulse.config import max_workers
from engagepulse.errors import ScanCancelled
from engagepulse.retry import RetryPolicy, call_with_retries, retry_policy
from engagepulse.stores.protocols import ActivityStore, BoundedActivityStore
from engagepulse.types import ActivityRecord, SubmissionEntry

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = ["student_id", "date", "submissions", "completed"]


@dataclass
class LedgerScan:
    window_start: date
    window_end: date
    active: Set[str] = field(default_factory=set)
    last_submission: Dict[str, Optional[date]] = field(default_factory=dict)

    def is_active(self, student_id: str) -> bool:
        return student_id in self.active


def is_valid_submission(entry: SubmissionEntry) -> bool:
    return entry.is_valid


def count_valid_submissions(record: ActivityRecord) -> int:
    return sum(1 for entry in record.submissions if is_valid_submission(entry))


def activity_frame(records: Iterable[ActivityRecord]) -> pd.DataFrame:
    """One row per activity record with submission and valid-submission counts.

    Records whose date key cannot be parsed as ``YYYY-MM-DD`` are dropped.
    """
    rows = [
        {
            "student_id": rec.student_id,
            "date": rec.date,
            "submissions": len(rec.submissions),
            "completed": count_valid_submissions(rec),
        }
        for rec in records
    ]
    df = pd.DataFrame(rows, columns=ACTIVITY_COLUMNS)
    df["date"] = pd.to_datetime(df["date"], format="%Y-%m-%d", errors="coerce")
    unparsed = int(df["date"].isna().sum())
    if unparsed:
        logger.warning("Dropped %d activity records with unparseable dates", unparsed)
    df = df.dropna(subset=["date"])
    df["date"] = df["date"].dt.date
    df["submissions"] = df["submissions"].astype(int)
    df["completed"] = df["completed"].astype(int)
    return df.reset_index(drop=True)


def window_bounds(today: date, lookback_days: int) -> Tuple[date, date]:
    """Inclusive bounds of the trailing lookback window."""
    return today - timedelta(days=lookback_days), today


def active_students(frame: pd.DataFrame, start: date, end: date) -> Set[str]:
    if frame.empty:
        return set()
    mask = (frame["completed"] > 0) & (frame["date"] >= start) & (frame["date"] <= end)
    return set(frame.loc[mask, "student_id"])


def last_valid_dates(frame: pd.DataFrame) -> Dict[str, date]:
    valid = frame[frame["completed"] > 0]
    if valid.empty:
        return {}
    return valid.groupby("student_id")["date"].max().to_dict()


def _fetch_histories(
    store: ActivityStore,
    student_ids: List[str],
    policy: RetryPolicy,
    workers: int,
    cancel_event: threading.Event | None,
) -> Dict[str, List[ActivityRecord]]:
    if not student_ids:
        return {}
    if cancel_event is not None and cancel_event.is_set():
        raise ScanCancelled("Ledger scan cancelled before fetching histories")

    histories: Dict[str, List[ActivityRecord]] = {}
    executor = ThreadPoolExecutor(max_workers=min(workers, len(student_ids)))
    try:
        futures = {
            executor.submit(
                call_with_retries,
                partial(store.fetch_activity_records, sid),
                policy,
                f"activity fetch for student {sid}",
            ): sid
            for sid in student_ids
        }
        for future in as_completed(futures):
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelled("Ledger scan cancelled")
            histories[futures[future]] = future.result()
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    if cancel_event is not None and cancel_event.is_set():
        raise ScanCancelled("Ledger scan cancelled")
    return histories


def scan_ledger(
    store: ActivityStore,
    student_ids: Iterable[str],
    lookback_days: int,
    today: date,
    cfg: Dict[str, Any],
    cancel_event: threading.Event | None = None,
) -> LedgerScan:
    """Split students into active / not active and find each last valid submission.

    Pass one uses the store's bounded query (when available) to resolve every
    student active inside the window. Pass two reads the full history of the
    remaining students only. Store errors propagate: a student that could not
    be read is never reported as active.
    """
    ids = list(dict.fromkeys(str(sid) for sid in student_ids))
    start, end = window_bounds(today, lookback_days)
    scan = LedgerScan(window_start=start, window_end=end)
    if not ids:
        return scan

    policy = retry_policy(cfg)
    candidates = set(ids)

    if isinstance(store, BoundedActivityStore):
        recent = call_with_retries(partial(store.fetch_activity_since, start), policy, "bounded activity query")
        frame = activity_frame(rec for rec in recent if rec.student_id in candidates)
        recent_active = active_students(frame, start, end)
        latest = last_valid_dates(frame)
        for sid in recent_active:
            scan.active.add(sid)
            scan.last_submission[sid] = latest.get(sid)
        logger.debug("Bounded pass resolved %d of %d students as active", len(recent_active), len(ids))

    remaining = [sid for sid in ids if sid not in scan.active]
    histories = _fetch_histories(store, remaining, policy, max_workers(cfg), cancel_event)
    for sid in remaining:
        frame = activity_frame(rec for rec in histories[sid] if rec.student_id == sid)
        if sid in active_students(frame, start, end):
            scan.active.add(sid)
        scan.last_submission[sid] = last_valid_dates(frame).get(sid)

    logger.info(
        "Scanned %d students over %s..%s: %d active", len(ids), start.isoformat(), end.isoformat(), len(scan.active)
    )
    return scan

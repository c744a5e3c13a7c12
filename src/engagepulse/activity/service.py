"""Missing-homework service: roster fetch, ledger scan, classification and caching."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from functools import partial
from typing import Any, Dict, List

from engagepulse.activity.missing import classify_missing_homework, filter_roster
from engagepulse.activity.scanner import scan_ledger
from engagepulse.cache import TTLCache
from engagepulse.config import lookback_days, today_in_timezone
from engagepulse.retry import call_with_retries, retry_policy
from engagepulse.stores.protocols import ActivityStore, RosterStore
from engagepulse.types import RiskRow, RosterFilters

logger = logging.getLogger(__name__)


def build_cache(cfg: Dict[str, Any]) -> TTLCache:
    ttl = float((cfg.get("missing_homework") or {}).get("cache_ttl_seconds", 300))
    return TTLCache(ttl_seconds=ttl)


@dataclass
class MissingHomeworkService:
    roster_store: RosterStore
    activity_store: ActivityStore
    cfg: Dict[str, Any] = field(default_factory=dict)
    cache: TTLCache | None = None

    def find_at_risk(
        self,
        lookback: int | None = None,
        filters: RosterFilters | None = None,
        today: date | None = None,
        cancel_event: threading.Event | None = None,
    ) -> List[RiskRow]:
        window = lookback_days(self.cfg, lookback)
        filters = filters or RosterFilters()
        today = today or today_in_timezone(self.cfg)
        key = (today, window, filters)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Missing-homework cache hit for %s", key)
                return [copy.copy(row) for row in cached]

        roster = call_with_retries(
            partial(self.roster_store.fetch_class_roster, filters), retry_policy(self.cfg), "class roster fetch"
        )
        entries = filter_roster(roster, filters)
        if not entries:
            rows: List[RiskRow] = []
        else:
            student_ids = [entry.student_id for entry in entries]
            scan = scan_ledger(self.activity_store, student_ids, window, today, self.cfg, cancel_event=cancel_event)
            rows = classify_missing_homework(entries, scan, today)

        if self.cache is not None:
            self.cache.set(key, tuple(copy.copy(row) for row in rows))
        logger.info("Found %d students without submissions in the last %d days", len(rows), window)
        return rows

    def invalidate(self) -> None:
        """Drop cached results, e.g. after a new submission is recorded."""
        if self.cache is not None:
            self.cache.clear()

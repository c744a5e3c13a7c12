"""Build the missing-homework list and split it by a staff member's follow list."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from engagepulse.activity.missing import risk_rows_frame, search_rows
from engagepulse.activity.service import MissingHomeworkService
from engagepulse.config import (
    DEFAULT_CONFIG_PATH,
    configure_logging,
    load_config,
    lookback_days,
    resolve_config_path,
    resolve_path,
    today_in_timezone,
)
from engagepulse.errors import NotFound, SourceUnavailable
from engagepulse.follow.manager import FollowListManager, FollowListView
from engagepulse.stores.factory import build_store
from engagepulse.stores.files import JsonDirectoryStore, write_demo_data
from engagepulse.types import RiskRow, RosterFilters


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List students without valid submissions in the lookback window.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config YAML.")
    parser.add_argument("--lookback-days", type=int, default=None, help="Lookback window in days.")
    parser.add_argument("--teacher", default="all", help="Only classes of this teacher id.")
    parser.add_argument("--class-id", default="all", help="Only this class id.")
    parser.add_argument("--allowed-class", action="append", default=None, help="Restrict to these class ids.")
    parser.add_argument("--user", default=None, help="Staff user id whose follow list splits the output.")
    parser.add_argument("--search", default="", help="Filter rows by student, email or class name.")
    parser.add_argument("--demo", action="store_true", help="Write a tiny demo dataset to the files store first.")
    return parser.parse_args()


def mark_followed(df: pd.DataFrame, followed: List[RiskRow]) -> pd.DataFrame:
    followed_ids = {row.student_id for row in followed}
    df = df.copy()
    df["followed"] = df["student_id"].isin(followed_ids)
    return df


def print_summary(df: pd.DataFrame, lookback: int) -> None:
    never = int(df["days_since_last_submission"].isna().sum()) if not df.empty else 0
    print(f"Students without submissions in the last {lookback} days: {len(df)} (never submitted: {never})")
    if "followed" in df.columns:
        print(f"Following: {int(df['followed'].sum())}, muted: {int((~df['followed']).sum())}")
    preview_cols = ["queue_rank", "student_name", "class_name", "last_submission_date", "days_since_last_submission"]
    if not df.empty:
        print(df.head(10)[[col for col in preview_cols if col in df.columns]].to_string(index=False))


def main() -> None:
    args = parse_args()
    try:
        cfg_path = resolve_config_path(args.config)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    cfg: Dict[str, Any] = load_config(cfg_path)
    configure_logging(cfg)
    store = build_store(cfg)

    if args.demo:
        if not isinstance(store, JsonDirectoryStore):
            print("--demo requires store.backend: files", file=sys.stderr)
            sys.exit(1)
        write_demo_data(store.data_dir, today_in_timezone(cfg))

    service = MissingHomeworkService(roster_store=store, activity_store=store, cfg=cfg)
    filters = RosterFilters.build(args.teacher, args.class_id, args.allowed_class)
    try:
        window = lookback_days(cfg, args.lookback_days)
        at_risk = service.find_at_risk(lookback=window, filters=filters)
        rows = search_rows(at_risk, args.search)
        df = risk_rows_frame(rows)
        if args.user:
            view = FollowListView(FollowListManager(store, cfg), args.user)
            view.refresh()
            view.ensure_default_follow(at_risk)
            df = mark_followed(df, view.partition(rows).followed)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    except NotFound as exc:
        print(f"No data for this selection: {exc}", file=sys.stderr)
        sys.exit(1)
    except SourceUnavailable as exc:
        print(f"Data source unavailable, please retry: {exc}", file=sys.stderr)
        sys.exit(2)

    output_dir = resolve_path((cfg.get("reports") or {}).get("output_dir", "reports"))
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "missing_homework.csv"
    df.to_csv(output_path, index=False)
    print(f"Wrote {output_path}")
    print_summary(df, window)


if __name__ == "__main__":
    main()

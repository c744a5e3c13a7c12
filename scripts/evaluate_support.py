"""Evaluate support-class students and attribute lack of progress."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from engagepulse.config import DEFAULT_CONFIG_PATH, configure_logging, load_config, resolve_config_path, resolve_path
from engagepulse.errors import NotFound, SourceUnavailable
from engagepulse.stores.factory import build_store
from engagepulse.support.evaluator import SupportEvaluator, evaluations_frame, responsibility_summary
from engagepulse.types import EvaluationRecord


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate students of a support class.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config YAML.")
    parser.add_argument("--support-class", help="Support class id to evaluate.")
    parser.add_argument("--student", action="append", default=None, help="Only evaluate these student ids.")
    parser.add_argument("--history", action="store_true", help="Show stored evaluations instead of evaluating.")
    parser.add_argument("--notes-for", metavar="EVALUATION_ID", help="Evaluation id whose notes to replace.")
    parser.add_argument("--notes", default=None, help="Notes text (with --notes-for).")
    return parser.parse_args()


def print_summary(records: List[EvaluationRecord]) -> None:
    df = evaluations_frame(records)
    cols = ["date", "student_id", "student_name", "attendance_rate", "homework_completion_rate", "progress_improved", "responsibility"]
    if not df.empty:
        print(df[cols].to_string(index=False, float_format=lambda v: f"{v:.2f}"))
    print(f"Responsibility counts: {responsibility_summary(records)}")


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
    evaluator = SupportEvaluator(
        activity_store=store, attendance_store=store, evaluation_store=store, student_directory=store, cfg=cfg
    )

    try:
        if args.notes_for:
            if args.notes is None:
                print("--notes is required with --notes-for", file=sys.stderr)
                sys.exit(1)
            record = evaluator.update_notes(args.notes_for, args.notes)
            print(f"Updated notes for evaluation {record.id}")
            return

        if not args.support_class:
            print("--support-class is required", file=sys.stderr)
            sys.exit(1)

        if args.history:
            records = evaluator.class_evaluations(args.support_class)
        else:
            records = evaluator.evaluate_class(args.support_class, student_ids=args.student)
    except NotFound as exc:
        print(f"No data for this selection: {exc}", file=sys.stderr)
        sys.exit(1)
    except SourceUnavailable as exc:
        print(f"Data source unavailable, please retry: {exc}", file=sys.stderr)
        sys.exit(2)

    if not args.history:
        output_dir = resolve_path((cfg.get("reports") or {}).get("output_dir", "reports"))
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / "support_evaluations.csv"
        evaluations_frame(records).to_csv(output_path, index=False)
        print(f"Wrote {output_path}")
    print_summary(records)


if __name__ == "__main__":
    main()

"""Follow, unfollow or show missing-homework follow lists."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from engagepulse.config import DEFAULT_CONFIG_PATH, configure_logging, load_config, resolve_config_path
from engagepulse.errors import SourceUnavailable
from engagepulse.follow.manager import FollowListManager
from engagepulse.stores.factory import build_store
from engagepulse.types import FollowState


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage a staff member's missing-homework follow list.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config YAML.")
    parser.add_argument("--user", required=True, help="Staff user id.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--follow", metavar="STUDENT_ID", help="Start following a student.")
    group.add_argument("--unfollow", metavar="STUDENT_ID", help="Stop following (mute) a student.")
    return parser.parse_args()


def describe(user_id: str, state: FollowState) -> str:
    ids = ", ".join(sorted(state.following_student_ids)) or "-"
    return (
        f"User {user_id}: initialized={state.missing_homework_follow_initialized}, "
        f"following {len(state.following_student_ids)} students: {ids}"
    )


def main() -> None:
    args = parse_args()
    try:
        cfg_path = resolve_config_path(args.config)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    cfg = load_config(cfg_path)
    configure_logging(cfg)
    manager = FollowListManager(build_store(cfg), cfg)

    try:
        if args.follow:
            state = manager.follow(args.user, args.follow)
        elif args.unfollow:
            state = manager.unfollow(args.user, args.unfollow)
        else:
            state = manager.get_state(args.user)
    except SourceUnavailable as exc:
        print(f"Follow list unavailable, please retry: {exc}", file=sys.stderr)
        sys.exit(2)

    print(describe(args.user, state))


if __name__ == "__main__":
    main()

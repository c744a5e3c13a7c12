"""Per-staff follow lists used to mute and unmute missing-homework alerts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, Iterable, List

from engagepulse.errors import EngineError
from engagepulse.retry import call_with_retries, retry_policy
from engagepulse.stores.protocols import FollowStore
from engagepulse.types import FollowState, RiskRow

logger = logging.getLogger(__name__)


@dataclass
class FollowPartition:
    followed: List[RiskRow] = field(default_factory=list)
    unfollowed: List[RiskRow] = field(default_factory=list)


def partition_rows(rows: Iterable[RiskRow], state: FollowState) -> FollowPartition:
    """Split classifier output into followed and muted rows, keeping order."""
    partition = FollowPartition()
    for row in rows:
        if row.student_id in state.following_student_ids:
            partition.followed.append(row)
        else:
            partition.unfollowed.append(row)
    return partition


@dataclass
class FollowListManager:
    """Read and mutate follow state through the store's atomic update.

    Every mutator returns the authoritative state written by the store. Errors
    propagate; nothing here keeps a local copy that could drift from storage.
    """

    store: FollowStore
    cfg: Dict[str, Any] = field(default_factory=dict)

    def _update(self, user_id: str, mutate, description: str) -> FollowState:
        return call_with_retries(
            partial(self.store.update_follow_state, user_id, mutate), retry_policy(self.cfg), description
        )

    def get_state(self, user_id: str) -> FollowState:
        return call_with_retries(
            partial(self.store.get_follow_state, user_id), retry_policy(self.cfg), f"follow state read for {user_id}"
        )

    def is_following(self, user_id: str, student_id: str) -> bool:
        return student_id in self.get_state(user_id).following_student_ids

    def initialize_default_follow(self, user_id: str, candidate_student_ids: Iterable[str]) -> FollowState:
        """Seed the follow list with the current at-risk population, once per user."""
        candidates = {str(sid) for sid in candidate_student_ids}

        def _seed(state: FollowState) -> FollowState | None:
            if state.missing_homework_follow_initialized:
                return None
            return FollowState(following_student_ids=set(candidates), missing_homework_follow_initialized=True)

        state = self._update(user_id, _seed, f"default follow initialization for {user_id}")
        logger.info("Follow list for %s holds %d students", user_id, len(state.following_student_ids))
        return state

    def follow(self, user_id: str, student_id: str) -> FollowState:
        def _add(state: FollowState) -> FollowState | None:
            if student_id in state.following_student_ids:
                return None
            state.following_student_ids.add(student_id)
            return state

        return self._update(user_id, _add, f"follow {student_id} for {user_id}")

    def unfollow(self, user_id: str, student_id: str) -> FollowState:
        def _remove(state: FollowState) -> FollowState | None:
            if student_id not in state.following_student_ids:
                return None
            state.following_student_ids.discard(student_id)
            return state

        return self._update(user_id, _remove, f"unfollow {student_id} for {user_id}")


class FollowListView:
    """Caller-side view of one user's follow list.

    The view only ever holds state returned by the store. A failed toggle
    re-reads the authoritative state instead of reverting a local guess.
    """

    def __init__(self, manager: FollowListManager, user_id: str) -> None:
        self.manager = manager
        self.user_id = user_id
        self.state = FollowState()

    def refresh(self) -> FollowState:
        self.state = self.manager.get_state(self.user_id)
        return self.state

    def ensure_default_follow(self, rows: List[RiskRow]) -> FollowState:
        if self.state.missing_homework_follow_initialized or not rows:
            return self.state
        self.state = self.manager.initialize_default_follow(self.user_id, [row.student_id for row in rows])
        return self.state

    def is_following(self, student_id: str) -> bool:
        return student_id in self.state.following_student_ids

    def toggle(self, student_id: str) -> FollowState:
        try:
            if self.is_following(student_id):
                self.state = self.manager.unfollow(self.user_id, student_id)
            else:
                self.state = self.manager.follow(self.user_id, student_id)
        except EngineError:
            try:
                self.refresh()
            except EngineError as exc:
                logger.warning("Could not re-read follow state for %s: %s", self.user_id, exc)
            raise
        return self.state

    def partition(self, rows: Iterable[RiskRow]) -> FollowPartition:
        return partition_rows(rows, self.state)

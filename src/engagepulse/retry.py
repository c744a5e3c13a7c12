"""Bounded exponential backoff for store calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, TypeVar

from engagepulse.errors import SourceUnavailable, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given failed attempt (1-based)."""
        return min(self.initial_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


def retry_policy(cfg: Dict[str, Any]) -> RetryPolicy:
    retry_cfg = cfg.get("retry") or {}
    policy = RetryPolicy(
        max_attempts=int(retry_cfg.get("max_attempts", 5)),
        initial_delay_seconds=float(retry_cfg.get("initial_delay_seconds", 1.0)),
        max_delay_seconds=float(retry_cfg.get("max_delay_seconds", 8.0)),
    )
    if policy.max_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1.")
    return policy


def call_with_retries(
    operation: Callable[[], T],
    policy: RetryPolicy,
    description: str = "store call",
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """Run ``operation``, retrying transient store errors.

    Only ``TransientStoreError`` is retried; every other exception propagates
    immediately. Once ``policy.max_attempts`` attempts have failed the last
    error is wrapped in ``SourceUnavailable``.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except TransientStoreError as exc:
            if attempt >= policy.max_attempts:
                logger.error("%s failed after %d attempts: %s", description, attempt, exc)
                raise SourceUnavailable(f"{description} failed after {attempt} attempts: {exc}") from exc
            wait = policy.delay_for(attempt)
            logger.warning("Retrying %s after %.1fs (attempt %d): %s", description, wait, attempt, exc)
            sleep(wait)

"""Rule table attributing lack of progress to teacher, student, or neither."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from engagepulse.types import INCONCLUSIVE, STUDENT, TEACHER

DEFAULT_THRESHOLD = 0.8


@dataclass(frozen=True)
class ResponsibilityInputs:
    attendance_rate: float
    homework_completion_rate: float
    progress_improved: bool


@dataclass(frozen=True)
class Thresholds:
    attendance: float = DEFAULT_THRESHOLD
    completion: float = DEFAULT_THRESHOLD


def thresholds_from_config(cfg: Dict[str, Any]) -> Thresholds:
    support_cfg = cfg.get("support") or {}
    return Thresholds(
        attendance=float(support_cfg.get("attendance_threshold", DEFAULT_THRESHOLD)),
        completion=float(support_cfg.get("completion_threshold", DEFAULT_THRESHOLD)),
    )


def classify_responsibility(inputs: ResponsibilityInputs, thresholds: Thresholds = Thresholds()) -> str:
    """First matching rule wins.

    1. attending and completing above threshold but not improving -> teacher
    2. attendance or completion below threshold -> student
    3. anything else (including exactly-at-threshold rates) -> inconclusive
    """
    attendance = inputs.attendance_rate
    completion = inputs.homework_completion_rate
    if attendance > thresholds.attendance and completion > thresholds.completion and not inputs.progress_improved:
        return TEACHER
    if attendance < thresholds.attendance or completion < thresholds.completion:
        return STUDENT
    return INCONCLUSIVE

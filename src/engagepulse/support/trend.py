"""Two-window progress trend."""

from __future__ import annotations

from typing import Sequence


def progress_improved(counts: Sequence[float]) -> bool:
    """Compare the mean of the later half of ``counts`` with the earlier half.

    The split point is ``len(counts) // 2`` so an odd-length series gives the
    extra point to the later half. A tie is not an improvement, and fewer than
    two points never count as one.
    """
    if len(counts) < 2:
        return False
    midpoint = len(counts) // 2
    first_half = counts[:midpoint]
    second_half = counts[midpoint:]
    first_mean = sum(first_half) / len(first_half)
    second_mean = sum(second_half) / len(second_half)
    return second_mean > first_mean

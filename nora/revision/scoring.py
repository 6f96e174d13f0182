from __future__ import annotations

from collections.abc import Sequence
from typing import Any


def percent_half_up(part: int, total: int) -> int:
    """
    Integer percentage of part/total, rounded half-up; 0 when total is 0.

    Python's round() rounds half to even (12.5 -> 12), so the rounding is
    done in integers: floor((200 * part + total) / (2 * total)).
    """
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


def compute_mastery_score(
    understood_concepts: Sequence[Any] | None,
    missing_concepts: Sequence[Any] | None,
) -> int:
    """Percentage of concepts understood at the last comparison."""
    understood = len(understood_concepts or ())
    missing = len(missing_concepts or ())
    return percent_half_up(understood, understood + missing)

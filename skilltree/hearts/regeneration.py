"""
Time-based heart regeneration and purchase rules.

A heart comes back every ``hours_per_heart`` hours up to ``max_hearts``. Hearts can
also be bought with zaps.
"""
from __future__ import annotations

from datetime import datetime, timezone

MAX_HEARTS = 5
HOURS_PER_HEART = 5
ZAPS_PER_HEART_PURCHASE = 10


def _hours_between(earlier: datetime, later: datetime) -> float:
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return max(0.0, (later - earlier).total_seconds() / 3600)


def regenerated_balance(
    current: int,
    last_regeneration: datetime,
    now: datetime | None = None,
    max_hearts: int = MAX_HEARTS,
    hours_per_heart: int = HOURS_PER_HEART,
) -> int:
    """
    Balance after regeneration since ``last_regeneration``.

    Never lowers a balance, including one already above the cap (bought hearts).
    """
    if current >= max_hearts:
        return current
    now = now or datetime.now(timezone.utc)
    regained = int(_hours_between(last_regeneration, now) // hours_per_heart)
    return min(max_hearts, current + regained)


def hours_until_next_heart(
    current: int,
    last_regeneration: datetime,
    now: datetime | None = None,
    max_hearts: int = MAX_HEARTS,
    hours_per_heart: int = HOURS_PER_HEART,
) -> float | None:
    """Hours until the next regenerated heart, or None when already full."""
    if current >= max_hearts:
        return None
    now = now or datetime.now(timezone.utc)
    elapsed = _hours_between(last_regeneration, now)
    return hours_per_heart - (elapsed % hours_per_heart)


def can_purchase_heart(
    current: int,
    zaps: int,
    max_hearts: int = MAX_HEARTS,
    price: int = ZAPS_PER_HEART_PURCHASE,
) -> bool:
    """Whether the learner can buy one heart."""
    return current < max_hearts and zaps >= price

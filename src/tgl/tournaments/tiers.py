"""Verification badge tiers and tier selection.

A tier maps a cumulative gift value (minor units) to a badge duration in
months. Tiers are stored on the tournament as an ordered list and must be
strictly ascending in both threshold and duration, e.g.::

    10000 -> 1 month, 20000 -> 2 months, 120000 -> 12 months
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from tgl.tournaments.errors import InvalidRewardTiers


@dataclass(frozen=True)
class RewardTier:
    threshold_amount: int
    duration_months: int

    def as_dict(self) -> dict[str, int]:
        return {"threshold_amount": self.threshold_amount, "duration_months": self.duration_months}


def parse_tiers(raw: Iterable[Any]) -> list[RewardTier]:
    """Build RewardTier objects from stored JSON dicts or (threshold, months) pairs."""
    tiers: list[RewardTier] = []
    for item in raw:
        if isinstance(item, RewardTier):
            tiers.append(item)
        elif isinstance(item, dict):
            tiers.append(RewardTier(int(item["threshold_amount"]), int(item["duration_months"])))
        else:
            threshold, months = item
            tiers.append(RewardTier(int(threshold), int(months)))
    return tiers


def validate_tiers(tiers: Sequence[RewardTier]) -> list[RewardTier]:
    """Check tiers are non-empty, positive and strictly ascending. Raises InvalidRewardTiers."""
    if not tiers:
        raise InvalidRewardTiers("At least one reward tier is required")

    for tier in tiers:
        if tier.threshold_amount <= 0 or tier.duration_months <= 0:
            raise InvalidRewardTiers("Reward tier thresholds and durations must be positive")

    for prev, cur in zip(tiers, tiers[1:]):
        if cur.threshold_amount <= prev.threshold_amount:
            raise InvalidRewardTiers("Reward tier thresholds must be strictly ascending")
        if cur.duration_months <= prev.duration_months:
            raise InvalidRewardTiers("Reward tier durations must be strictly ascending")

    return list(tiers)


def select_tier(tiers: Sequence[RewardTier], amount: int) -> RewardTier | None:
    """Return the highest tier whose threshold is met, or None below the lowest."""
    selected = None
    for tier in tiers:
        if amount >= tier.threshold_amount:
            selected = tier
    return selected


def badge_type_for(duration_months: int) -> str:
    """Badge label sent with reward notifications."""
    if duration_months == 12:
        return "1-year-verification"
    return f"{duration_months}-month-verification"


def duration_label(duration_months: int) -> str:
    """Stats key for a duration: 1 -> "1-month", 2 -> "2-months"."""
    return f"{duration_months}-month{'s' if duration_months > 1 else ''}"

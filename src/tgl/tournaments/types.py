"""Tournament enums and the ranking-metric dispatch.

Each tournament type maps to exactly one ranking rule. Rules are plain
callables over ``(sent, received)`` so the same rule works on Python ints
(ledger sums) and on SQLAlchemy column expressions (leaderboard ORDER BY).
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any


class TournamentType(str, Enum):
    GIFT_RECEIVER = "gift_receiver"
    GIFT_SENDER = "gift_sender"
    ROOM_GIFTS = "room_gifts"
    COMBINED = "combined"


class TournamentStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    REGISTERED = "registered"
    ACTIVE = "active"
    COMPLETED = "completed"


class RewardMetric(str, Enum):
    """Which value qualifies a participant for a reward tier."""

    RANKING = "ranking"
    MAX_SENT_RECEIVED = "max_sent_received"


RankingRule = Callable[[Any, Any], Any]

RANKING_RULES: dict[TournamentType, RankingRule] = {
    TournamentType.GIFT_RECEIVER: lambda sent, received: received,
    TournamentType.GIFT_SENDER: lambda sent, received: sent,
    TournamentType.ROOM_GIFTS: lambda sent, received: sent + received,
    TournamentType.COMBINED: lambda sent, received: sent + received,
}

VALID_TRANSITIONS: dict[TournamentStatus, list[TournamentStatus]] = {
    TournamentStatus.UPCOMING: [TournamentStatus.ACTIVE, TournamentStatus.CANCELLED],
    TournamentStatus.ACTIVE: [TournamentStatus.COMPLETED, TournamentStatus.CANCELLED],
    TournamentStatus.COMPLETED: [],
    TournamentStatus.CANCELLED: [],
}

# Registration is open in these states (subject to deadline and capacity)
JOINABLE_STATUSES = frozenset({TournamentStatus.UPCOMING, TournamentStatus.ACTIVE})


def ranking_metric(tournament_type: str | TournamentType, sent: Any, received: Any) -> Any:  # noqa: ANN401
    """Apply the ranking rule for a tournament type."""
    return RANKING_RULES[TournamentType(tournament_type)](sent, received)


def qualifying_metric(
    tournament_type: str | TournamentType,
    reward_metric: str | RewardMetric,
    sent: int,
    received: int,
) -> int:
    """Value compared against reward tier thresholds."""
    if RewardMetric(reward_metric) is RewardMetric.MAX_SENT_RECEIVED:
        return max(sent, received)
    return int(ranking_metric(tournament_type, sent, received))

"""Pydantic request/response models for tournament endpoints.

Money fields are integer minor units; the matching ``*_dollars`` fields are
display strings such as ``"150.00"``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from tgl.tournaments.money import format_minor_units
from tgl.tournaments.types import RewardMetric, TournamentStatus, TournamentType


# ── Tournaments ──


class RewardTierSchema(BaseModel):
    threshold_amount: int
    duration_months: int


class TournamentResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    type: str
    status: str
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime
    max_participants: int
    entry_fee: int
    minimum_gift_value: int
    minimum_gift_value_dollars: str
    reward_tiers: list[RewardTierSchema]
    reward_metric: str
    is_public: bool
    total_participants: int
    total_gifts_value: int
    total_gifts_value_dollars: str
    total_gifts_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, tournament) -> TournamentResponse:  # noqa: ANN001
        return cls(
            id=tournament.id,
            name=tournament.name,
            description=tournament.description,
            type=tournament.type,
            status=tournament.status,
            start_date=tournament.start_date,
            end_date=tournament.end_date,
            registration_deadline=tournament.registration_deadline,
            max_participants=tournament.max_participants,
            entry_fee=tournament.entry_fee,
            minimum_gift_value=tournament.minimum_gift_value,
            minimum_gift_value_dollars=format_minor_units(tournament.minimum_gift_value),
            reward_tiers=[RewardTierSchema(**t) for t in tournament.reward_tiers],
            reward_metric=tournament.reward_metric,
            is_public=tournament.is_public,
            total_participants=tournament.total_participants,
            total_gifts_value=tournament.total_gifts_value,
            total_gifts_value_dollars=format_minor_units(tournament.total_gifts_value),
            total_gifts_count=tournament.total_gifts_count,
            created_at=tournament.created_at,
            updated_at=tournament.updated_at,
        )


class TournamentListResponse(BaseModel):
    tournaments: list[TournamentResponse]
    total: int
    page: int
    limit: int


class TournamentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: TournamentType
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime
    max_participants: int = Field(100, ge=1)
    entry_fee: int = Field(0, ge=0)
    minimum_gift_value: int | None = Field(None, ge=0)
    reward_tiers: list[RewardTierSchema] | None = None
    reward_metric: RewardMetric = RewardMetric.RANKING
    is_public: bool = True


class TournamentUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    type: TournamentType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    registration_deadline: datetime | None = None
    max_participants: int | None = Field(None, ge=1)
    entry_fee: int | None = Field(None, ge=0)
    minimum_gift_value: int | None = Field(None, ge=0)
    reward_tiers: list[RewardTierSchema] | None = None
    reward_metric: RewardMetric | None = None
    is_public: bool | None = None


class StatusUpdateRequest(BaseModel):
    status: TournamentStatus


# ── Participation ──


class JoinRequest(BaseModel):
    room_id: int | None = None


class ParticipantResponse(BaseModel):
    id: int
    tournament_id: int
    user_id: int
    room_id: int | None = None
    status: str
    gifts_sent: int
    gifts_received: int
    total_gift_value_sent: int
    total_gift_value_received: int
    current_rank: int | None = None
    best_rank: int | None = None
    has_earned_verification_badge: bool
    verification_badge_duration: int | None = None
    verification_badge_earned_at: datetime | None = None
    registered_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class AdminParticipantResponse(ParticipantResponse):
    username: str
    display_name: str | None = None


# ── Gifts ──


class SendGiftRequest(BaseModel):
    gift_id: int
    recipient_id: int
    # Range is enforced by the ledger so the error carries its own code
    quantity: int = 1
    message: str | None = Field(None, max_length=500)


class TournamentGiftResponse(BaseModel):
    id: int
    tournament_id: int
    sender_id: int
    recipient_id: int
    gift_id: int
    quantity: int
    unit_price: int
    total_value: int
    message: str | None = None
    leaderboard_points_awarded: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TournamentGiftListResponse(BaseModel):
    gifts: list[TournamentGiftResponse]
    total: int
    page: int
    limit: int


# ── Leaderboard ──


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: int
    username: str
    display_name: str | None = None
    score: int
    score_dollars: str
    gifts_sent: int
    gifts_received: int
    total_gift_value_sent: int
    total_gift_value_received: int
    total_sent_dollars: str
    total_received_dollars: str
    has_earned_verification_badge: bool
    verification_badge_duration: int | None = None


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntryResponse]
    total: int
    page: int
    per_page: int


# ── Admin ──


class AggregateAuditResponse(BaseModel):
    tournament_id: int
    cached: dict[str, int]
    ledger: dict[str, int]
    drift: dict[str, int]
    consistent: bool


class TournamentStatsResponse(BaseModel):
    tournament: TournamentResponse
    rewards_issued: int
    audit: AggregateAuditResponse


class CheckBadgesResponse(BaseModel):
    rewards_issued: int


class ExpireVerificationsResponse(BaseModel):
    expired_users: int
    user_ids: list[int]


class RecentRewardResponse(BaseModel):
    id: int
    user_id: int
    username: str
    tournament_id: int | None = None
    badge_duration: int
    trigger_amount: int
    trigger_amount_dollars: str
    applied_at: datetime | None = None
    new_verification_expires_at: datetime | None = None


class BadgeStatsResponse(BaseModel):
    total_rewards: int
    by_duration: dict[str, int]
    recent: list[RecentRewardResponse]

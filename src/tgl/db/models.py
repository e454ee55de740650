"""ORM models for the tournament gift ledger.

Tables are created by the Alembic migrations in ``alembic/versions``.
Money columns hold integer minor units (100 coins = $1).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from tgl.db.base import Base
from tgl.db.types import BigIntPK, JSONType, TZDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table (owned by the account service, verification fields owned here)."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")

    # --- Verification badge ---
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    verified_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    verification_expires_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    # Informational only: the admin who verified the user. NULL for system rewards.
    verified_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verification_method: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Gift catalog (read-only from this service's point of view)
# ---------------------------------------------------------------------------


class Gift(Base):
    """A giftable catalog item with a fixed unit price."""

    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


class Tournament(Base):
    """Time-boxed gift tournament with cached aggregates over its ledger."""

    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="upcoming")
    start_date: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    registration_deadline: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    entry_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    minimum_gift_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Ordered list of {"threshold_amount": int, "duration_months": int}
    reward_tiers: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    reward_metric: Mapped[str] = mapped_column(String(32), nullable=False, default="ranking")
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # --- Cached aggregates ---
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gifts_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_gifts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)


class TournamentParticipant(Base):
    """A user's registration in one tournament, with per-tournament counters."""

    __tablename__ = "tournament_participants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_tournament_participants_tournament_user"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    room_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="registered")

    gifts_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gifts_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gift_value_sent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_gift_value_received: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    current_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    has_earned_verification_badge: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    verification_badge_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verification_badge_earned_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)

    registered_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)


class TournamentGift(Base):
    """Immutable ledger entry: one gift-send event inside a tournament."""

    __tablename__ = "tournament_gifts"
    __table_args__ = (
        Index("ix_tournament_gifts_tournament_sender", "tournament_id", "sender_id"),
        Index("ix_tournament_gifts_tournament_recipient", "tournament_id", "recipient_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    recipient_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    gift_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("gifts.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    leaderboard_points_awarded: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)


class VerificationBadgeReward(Base):
    """Append-only record of a verification badge issued for tournament gifting."""

    __tablename__ = "verification_badge_rewards"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "tournament_id", "badge_duration",
            name="uq_verification_badge_rewards_user_tournament_duration",
        ),
        Index("ix_verification_badge_rewards_user_tournament", "user_id", "tournament_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False, default="tournament_gifts")
    trigger_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    badge_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    tournament_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("tournaments.id", ondelete="SET NULL"), nullable=True
    )
    was_applied: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    applied_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    old_verification_expires_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    new_verification_expires_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, default=_utcnow)

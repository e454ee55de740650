"""Tournament lifecycle and registration.

State progression: upcoming -> active -> completed, with cancellation allowed
from upcoming or active. Transitions are validated; completed and cancelled
are terminal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.config import get_settings
from tgl.db import locking
from tgl.db.models import Tournament, TournamentGift, TournamentParticipant, VerificationBadgeReward
from tgl.tournaments.errors import (
    AlreadyRegistered,
    InvalidStatusTransition,
    InvalidTournamentWindow,
    RegistrationClosed,
    TournamentFull,
    TournamentLocked,
    TournamentNotFound,
)
from tgl.tournaments.tiers import RewardTier, parse_tiers, validate_tiers
from tgl.tournaments.types import (
    JOINABLE_STATUSES,
    VALID_TRANSITIONS,
    ParticipantStatus,
    RewardMetric,
    TournamentStatus,
    TournamentType,
)

logger = logging.getLogger(__name__)

# Fields an admin update may touch. Aggregates and status are excluded.
UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "type",
    "start_date",
    "end_date",
    "registration_deadline",
    "max_participants",
    "entry_fee",
    "minimum_gift_value",
    "reward_tiers",
    "reward_metric",
    "is_public",
})

DATE_FIELDS = frozenset({"start_date", "end_date", "registration_deadline"})

# Fields that decide who qualifies; frozen once a tournament leaves upcoming.
SCORING_FIELDS = frozenset({"type", "reward_metric", "reward_tiers", "minimum_gift_value"})


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a status transition. Raises InvalidStatusTransition if invalid."""
    valid = VALID_TRANSITIONS.get(TournamentStatus(current_status), [])
    if TournamentStatus(target_status) not in valid:
        raise InvalidStatusTransition(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes from clients as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _validate_window(start_date: datetime, end_date: datetime, registration_deadline: datetime) -> None:
    if start_date >= end_date:
        raise InvalidTournamentWindow("Tournament must start before it ends")
    if registration_deadline > end_date:
        raise InvalidTournamentWindow("Registration deadline must not be after the end date")


async def get_tournament(
    db: AsyncSession,
    tournament_id: int,
    *,
    for_update: bool = False,
    public_only: bool = False,
) -> Tournament:
    """Get a tournament by ID. Raises TournamentNotFound."""
    query = select(Tournament).where(Tournament.id == tournament_id)
    if public_only:
        query = query.where(Tournament.is_public.is_(True))
    if for_update:
        query = locking.for_update(query)
    result = await db.execute(query.execution_options(populate_existing=True))
    tournament = result.scalar_one_or_none()
    if tournament is None:
        raise TournamentNotFound()
    return tournament


async def create_tournament(
    db: AsyncSession,
    *,
    name: str,
    tournament_type: str,
    start_date: datetime,
    end_date: datetime,
    registration_deadline: datetime,
    description: str | None = None,
    max_participants: int = 100,
    entry_fee: int = 0,
    minimum_gift_value: int | None = None,
    reward_tiers: list[Any] | None = None,
    reward_metric: str = RewardMetric.RANKING.value,
    is_public: bool = True,
    created_by: int | None = None,
) -> Tournament:
    """Create a new tournament in the upcoming state."""
    settings = get_settings()
    tiers = validate_tiers(parse_tiers(reward_tiers if reward_tiers is not None else settings.default_reward_tiers))
    start_date, end_date, registration_deadline = (
        _as_utc(start_date), _as_utc(end_date), _as_utc(registration_deadline)
    )
    _validate_window(start_date, end_date, registration_deadline)

    now = datetime.now(timezone.utc)
    tournament = Tournament(
        name=name,
        description=description,
        type=TournamentType(tournament_type).value,
        status=TournamentStatus.UPCOMING.value,
        start_date=start_date,
        end_date=end_date,
        registration_deadline=registration_deadline,
        max_participants=max_participants,
        entry_fee=entry_fee,
        minimum_gift_value=(
            minimum_gift_value if minimum_gift_value is not None else settings.default_minimum_gift_value
        ),
        reward_tiers=[t.as_dict() for t in tiers],
        reward_metric=RewardMetric(reward_metric).value,
        is_public=is_public,
        created_by=created_by,
        total_participants=0,
        total_gifts_value=0,
        total_gifts_count=0,
        created_at=now,
        updated_at=now,
    )
    db.add(tournament)
    await db.commit()
    await db.refresh(tournament)
    logger.info("Tournament created: id=%s type=%s", tournament.id, tournament.type)
    return tournament


async def update_tournament(db: AsyncSession, tournament_id: int, changes: dict[str, Any]) -> Tournament:
    """Apply a partial update. Unknown or protected fields are ignored.

    Scoring rules can only change while the tournament is upcoming; changing
    them later would re-rank gifts already sent under the old rules.
    """
    try:
        tournament = await get_tournament(db, tournament_id, for_update=True)

        for field, value in changes.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if field == "reward_tiers":
                value = [t.as_dict() for t in validate_tiers(parse_tiers(value))]
            elif field == "type":
                value = TournamentType(value).value
            elif field == "reward_metric":
                value = RewardMetric(value).value
            elif field in DATE_FIELDS:
                value = _as_utc(value)

            if (
                field in SCORING_FIELDS
                and tournament.status != TournamentStatus.UPCOMING
                and value != getattr(tournament, field)
            ):
                raise TournamentLocked(f"{field} is fixed once a tournament is no longer upcoming")
            setattr(tournament, field, value)

        _validate_window(tournament.start_date, tournament.end_date, tournament.registration_deadline)
        tournament.updated_at = datetime.now(timezone.utc)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return tournament


async def transition_status(db: AsyncSession, tournament_id: int, target_status: str) -> Tournament:
    """Move a tournament to a new status with validation."""
    try:
        tournament = await get_tournament(db, tournament_id, for_update=True)
        validate_transition(tournament.status, target_status)

        now = datetime.now(timezone.utc)
        tournament.status = TournamentStatus(target_status).value
        tournament.updated_at = now

        if target_status == TournamentStatus.COMPLETED:
            await db.execute(
                update(TournamentParticipant)
                .where(TournamentParticipant.tournament_id == tournament_id)
                .values(status=ParticipantStatus.COMPLETED.value, completed_at=now)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Tournament %s transitioned to %s", tournament_id, target_status)
    return tournament


async def delete_tournament(db: AsyncSession, tournament_id: int) -> None:
    """Delete a tournament with its participants and ledger. Reward audit rows are kept."""
    try:
        tournament = await get_tournament(db, tournament_id, for_update=True)
        if tournament.status == TournamentStatus.ACTIVE:
            raise TournamentLocked()

        await db.execute(
            update(VerificationBadgeReward)
            .where(VerificationBadgeReward.tournament_id == tournament_id)
            .values(tournament_id=None)
        )
        await db.execute(delete(TournamentGift).where(TournamentGift.tournament_id == tournament_id))
        await db.execute(
            delete(TournamentParticipant).where(TournamentParticipant.tournament_id == tournament_id)
        )
        await db.delete(tournament)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Tournament %s deleted", tournament_id)


async def list_tournaments(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    status: str | None = None,
    tournament_type: str | None = None,
    public_only: bool = True,
) -> tuple[list[Tournament], int]:
    """List tournaments newest first. Returns (page items, total count)."""
    conditions = []
    if public_only:
        conditions.append(Tournament.is_public.is_(True))
    if status:
        conditions.append(Tournament.status == status)
    if tournament_type:
        conditions.append(Tournament.type == tournament_type)

    query = (
        select(Tournament)
        .where(*conditions)
        .order_by(Tournament.created_at.desc(), Tournament.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    items = list(result.scalars().all())

    total = (await db.execute(select(func.count(Tournament.id)).where(*conditions))).scalar_one()
    return items, total


async def list_active_tournaments(db: AsyncSession, limit: int = 10) -> list[Tournament]:
    """Public active tournaments, biggest by gift value first."""
    result = await db.execute(
        select(Tournament)
        .where(
            Tournament.status == TournamentStatus.ACTIVE.value,
            Tournament.is_public.is_(True),
        )
        .order_by(Tournament.total_gifts_value.desc(), Tournament.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def join_tournament(
    db: AsyncSession,
    tournament_id: int,
    user_id: int,
    room_id: int | None = None,
    now: datetime | None = None,
) -> TournamentParticipant:
    """Register a user as a participant.

    The tournament row is locked so the capacity check and the
    total_participants increment cannot interleave with another join.
    """
    now = now or datetime.now(timezone.utc)
    try:
        tournament = await get_tournament(db, tournament_id, for_update=True)

        if TournamentStatus(tournament.status) not in JOINABLE_STATUSES:
            raise RegistrationClosed()
        if now > tournament.registration_deadline:
            raise RegistrationClosed("Registration deadline has passed")
        if tournament.total_participants >= tournament.max_participants:
            raise TournamentFull()

        existing = await db.execute(
            select(TournamentParticipant.id).where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.user_id == user_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyRegistered()

        participant = TournamentParticipant(
            tournament_id=tournament_id,
            user_id=user_id,
            room_id=room_id,
            status=ParticipantStatus.REGISTERED.value,
            gifts_sent=0,
            gifts_received=0,
            total_gift_value_sent=0,
            total_gift_value_received=0,
            current_rank=None,
            best_rank=None,
            has_earned_verification_badge=False,
            verification_badge_duration=None,
            verification_badge_earned_at=None,
            registered_at=now,
            completed_at=None,
        )
        db.add(participant)
        await db.execute(
            update(Tournament)
            .where(Tournament.id == tournament_id)
            .values(total_participants=Tournament.total_participants + 1, updated_at=now)
        )
        await db.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent join for the same user
        await db.rollback()
        raise AlreadyRegistered() from e
    except Exception:
        await db.rollback()
        raise

    logger.info("User %s joined tournament %s", user_id, tournament_id)
    return participant


def tiers_of(tournament: Tournament) -> list[RewardTier]:
    """Typed reward tiers stored on a tournament."""
    return parse_tiers(tournament.reward_tiers)

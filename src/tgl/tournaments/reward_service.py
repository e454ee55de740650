"""Verification badge reward evaluation.

Given a (user, tournament) pair, recompute the user's qualifying value from
the ledger, pick the highest reward tier it reaches and issue a reward
unless one of equal or greater duration was already issued for that
tournament. Safe to call repeatedly and concurrently:

- the participant row lock serialises evaluations for one (user, tournament)
- the unique constraint on (user, tournament, duration) rejects a duplicate
  that slips past the lock
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.database import get_session_factory
from tgl.db import locking
from tgl.db.models import Tournament, TournamentGift, TournamentParticipant, User, VerificationBadgeReward
from tgl.redis_client import get_redis_or_none
from tgl.tournaments.money import format_minor_units
from tgl.tournaments.notifications import notify_tournament_reward
from tgl.tournaments.tiers import duration_label, parse_tiers, select_tier
from tgl.tournaments.types import qualifying_metric
from tgl.tournaments.verification_service import apply_badge

logger = logging.getLogger(__name__)

REWARD_TYPE_TOURNAMENT_GIFTS = "tournament_gifts"


async def get_ledger_totals(db: AsyncSession, user_id: int, tournament_id: int) -> tuple[int, int]:
    """Sum (sent, received) gift value for a user straight from the ledger."""
    sent = await db.execute(
        select(func.coalesce(func.sum(TournamentGift.total_value), 0)).where(
            TournamentGift.tournament_id == tournament_id,
            TournamentGift.sender_id == user_id,
        )
    )
    received = await db.execute(
        select(func.coalesce(func.sum(TournamentGift.total_value), 0)).where(
            TournamentGift.tournament_id == tournament_id,
            TournamentGift.recipient_id == user_id,
        )
    )
    return int(sent.scalar_one()), int(received.scalar_one())


async def get_highest_awarded_duration(db: AsyncSession, user_id: int, tournament_id: int) -> int | None:
    """Longest applied badge duration already issued for (user, tournament)."""
    result = await db.execute(
        select(func.max(VerificationBadgeReward.badge_duration)).where(
            VerificationBadgeReward.user_id == user_id,
            VerificationBadgeReward.tournament_id == tournament_id,
            VerificationBadgeReward.was_applied.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def evaluate(
    db: AsyncSession,
    redis: object,
    user_id: int,
    tournament_id: int,
    now: datetime | None = None,
) -> int | None:
    """Issue the reward a user currently qualifies for.

    Returns the awarded duration in months, or None when nothing was issued
    (not a participant, below the lowest tier, already rewarded, or lost a race).
    Commits on success.
    """
    now = now or datetime.now(timezone.utc)

    participant_query = select(TournamentParticipant).where(
        TournamentParticipant.tournament_id == tournament_id,
        TournamentParticipant.user_id == user_id,
    )
    participant_result = await db.execute(
        locking.for_update(participant_query).execution_options(populate_existing=True)
    )
    participant = participant_result.scalar_one_or_none()
    if participant is None:
        await db.rollback()
        return None

    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        await db.rollback()
        return None

    sent, received = await get_ledger_totals(db, user_id, tournament_id)
    metric = qualifying_metric(tournament.type, tournament.reward_metric, sent, received)

    tier = select_tier(parse_tiers(tournament.reward_tiers), metric)
    if tier is None:
        await db.rollback()
        return None

    awarded = await get_highest_awarded_duration(db, user_id, tournament_id)
    if awarded is not None and awarded >= tier.duration_months:
        await db.rollback()
        return None

    try:
        change = await apply_badge(
            db, user_id, tier.duration_months, tournament_id, metric, now=now
        )
        db.add(VerificationBadgeReward(
            user_id=user_id,
            reward_type=REWARD_TYPE_TOURNAMENT_GIFTS,
            trigger_amount=metric,
            badge_duration=tier.duration_months,
            tournament_id=tournament_id,
            was_applied=True,
            applied_at=now,
            old_verification_expires_at=change.old_expires_at,
            new_verification_expires_at=change.new_expires_at,
            created_at=now,
        ))
        participant.has_earned_verification_badge = True
        participant.verification_badge_duration = tier.duration_months
        participant.verification_badge_earned_at = now
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(
            "Race condition: reward already issued for user %s tournament %s (%s months)",
            user_id, tournament_id, tier.duration_months,
        )
        return None
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Verification reward issued: user=%s tournament=%s months=%s trigger=$%s",
        user_id, tournament_id, tier.duration_months, format_minor_units(metric),
    )
    await notify_tournament_reward(redis, user_id, tournament_id, tier.duration_months)
    return tier.duration_months


async def trigger_reward_evaluation(tournament_id: int, user_ids: list[int]) -> None:
    """Evaluate rewards for users after a gift, in a fresh session.

    Runs after the response is sent. Failures are logged; the reconciliation
    sweep picks up anything missed.
    """
    redis = get_redis_or_none()
    session_factory = get_session_factory()
    for user_id in user_ids:
        try:
            async with session_factory() as db:
                await evaluate(db, redis, user_id, tournament_id)
        except Exception:
            logger.exception(
                "Reward evaluation failed for user %s in tournament %s", user_id, tournament_id
            )


async def get_badge_statistics(db: AsyncSession, recent_limit: int = 10) -> dict:
    """Totals by duration plus the most recent tournament rewards."""
    applied = (
        VerificationBadgeReward.reward_type == REWARD_TYPE_TOURNAMENT_GIFTS,
        VerificationBadgeReward.was_applied.is_(True),
    )

    total = (
        await db.execute(select(func.count(VerificationBadgeReward.id)).where(*applied))
    ).scalar_one()

    by_duration_result = await db.execute(
        select(VerificationBadgeReward.badge_duration, func.count(VerificationBadgeReward.id))
        .where(*applied)
        .group_by(VerificationBadgeReward.badge_duration)
        .order_by(VerificationBadgeReward.badge_duration)
    )
    by_duration = {duration_label(months): count for months, count in by_duration_result.all()}

    recent_result = await db.execute(
        select(VerificationBadgeReward, User.username)
        .join(User, User.id == VerificationBadgeReward.user_id)
        .where(*applied)
        .order_by(VerificationBadgeReward.applied_at.desc(), VerificationBadgeReward.id.desc())
        .limit(recent_limit)
    )
    recent = [
        {
            "id": reward.id,
            "user_id": reward.user_id,
            "username": username,
            "tournament_id": reward.tournament_id,
            "badge_duration": reward.badge_duration,
            "trigger_amount": reward.trigger_amount,
            "trigger_amount_dollars": format_minor_units(reward.trigger_amount),
            "applied_at": reward.applied_at,
            "new_verification_expires_at": reward.new_verification_expires_at,
        }
        for reward, username in recent_result.all()
    ]

    return {"total_rewards": total, "by_duration": by_duration, "recent": recent}

"""Self-healing passes over active tournaments.

The reward evaluator is idempotent, so re-running it for every participant
issues exactly the rewards a missed post-gift trigger would have issued.
Each participant is evaluated in its own transaction; an interrupted sweep
simply resumes on the next run.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tgl.db.models import Tournament, TournamentGift, TournamentParticipant
from tgl.tournaments.reward_service import evaluate
from tgl.tournaments.types import TournamentStatus

logger = logging.getLogger(__name__)


async def active_tournament_ids(db: AsyncSession) -> list[int]:
    """IDs of every active tournament, public or not."""
    result = await db.execute(
        select(Tournament.id)
        .where(Tournament.status == TournamentStatus.ACTIVE.value)
        .order_by(Tournament.id)
    )
    return list(result.scalars().all())


async def _participant_user_ids(db: AsyncSession, tournament_id: int) -> list[int]:
    result = await db.execute(
        select(TournamentParticipant.user_id)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.id)
    )
    return list(result.scalars().all())


async def sweep_active_tournaments(session_factory: async_sessionmaker, redis: object) -> int:
    """Re-evaluate rewards for every participant of every active tournament.

    Returns the number of rewards issued.
    """
    async with session_factory() as db:
        tournament_ids = await active_tournament_ids(db)
        work = [(tid, await _participant_user_ids(db, tid)) for tid in tournament_ids]

    issued = 0
    failures = 0
    for tournament_id, user_ids in work:
        for user_id in user_ids:
            try:
                async with session_factory() as db:
                    if await evaluate(db, redis, user_id, tournament_id) is not None:
                        issued += 1
            except Exception:
                failures += 1
                logger.exception(
                    "Sweep failed for user %s in tournament %s", user_id, tournament_id
                )

    logger.info(
        "Reward sweep complete: tournaments=%d issued=%d failures=%d",
        len(work), issued, failures,
    )
    return issued


async def audit_tournament_aggregates(db: AsyncSession, tournament_id: int) -> dict:
    """Compare cached aggregates with sums recomputed from the ledger.

    Returns both sets of numbers and a ``consistent`` flag. Read-only.
    """
    tournament = await db.get(Tournament, tournament_id, populate_existing=True)
    if tournament is None:
        return {}

    ledger = (
        await db.execute(
            select(
                func.count(TournamentGift.id),
                func.coalesce(func.sum(TournamentGift.total_value), 0),
            ).where(TournamentGift.tournament_id == tournament_id)
        )
    ).one()
    participants = (
        await db.execute(
            select(
                func.count(TournamentParticipant.id),
                func.coalesce(func.sum(TournamentParticipant.total_gift_value_sent), 0),
                func.coalesce(func.sum(TournamentParticipant.total_gift_value_received), 0),
            ).where(TournamentParticipant.tournament_id == tournament_id)
        )
    ).one()

    ledger_count, ledger_value = int(ledger[0]), int(ledger[1])
    participant_count, sent_value, received_value = (int(v) for v in participants)

    drift = {
        "total_gifts_count": tournament.total_gifts_count - ledger_count,
        "total_gifts_value": tournament.total_gifts_value - ledger_value,
        "total_participants": tournament.total_participants - participant_count,
        "participant_sent_value": sent_value - ledger_value,
        "participant_received_value": received_value - ledger_value,
    }
    consistent = not any(drift.values())
    if not consistent:
        logger.warning("Aggregate drift in tournament %s: %s", tournament_id, drift)

    return {
        "tournament_id": tournament_id,
        "cached": {
            "total_gifts_count": tournament.total_gifts_count,
            "total_gifts_value": tournament.total_gifts_value,
            "total_participants": tournament.total_participants,
        },
        "ledger": {
            "total_gifts_count": ledger_count,
            "total_gifts_value": ledger_value,
            "total_participants": participant_count,
        },
        "drift": drift,
        "consistent": consistent,
    }

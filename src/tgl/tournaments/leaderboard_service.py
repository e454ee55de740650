"""Tournament leaderboard, ranked from the participant counters.

Ordering is the tournament type's ranking key descending, then
registration time, then user id, so ties always resolve the same way.
Pages are cached in Redis for a few seconds; the database stays the
source of truth and any cache failure falls back to it.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.config import get_settings
from tgl.db.models import Tournament, TournamentParticipant, User
from tgl.tournaments.money import format_minor_units
from tgl.tournaments.types import ranking_metric

logger = logging.getLogger(__name__)


def build_leaderboard_cache_key(tournament_id: int, page: int, per_page: int) -> str:
    return f"tournament:{tournament_id}:leaderboard:{page}:{per_page}"


def _ranking_order(tournament: Tournament) -> list:
    key = ranking_metric(
        tournament.type,
        TournamentParticipant.total_gift_value_sent,
        TournamentParticipant.total_gift_value_received,
    )
    return [key.desc(), TournamentParticipant.registered_at.asc(), TournamentParticipant.user_id.asc()]


async def _read_cache(redis: object, key: str) -> dict | None:
    if redis is None:
        return None
    try:
        cached = await redis.get(key)  # type: ignore[union-attr]
    except Exception:
        logger.warning("Leaderboard cache read failed for %s", key, exc_info=True)
        return None
    if not cached:
        return None
    return json.loads(cached)


async def _write_cache(redis: object, key: str, payload: dict, ttl: int) -> None:
    if redis is None:
        return
    try:
        await redis.setex(key, ttl, json.dumps(payload))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Leaderboard cache write failed for %s", key, exc_info=True)


async def get_leaderboard(
    db: AsyncSession,
    tournament: Tournament,
    page: int = 1,
    per_page: int = 50,
    redis: object = None,
) -> dict:
    """One page of the tournament leaderboard with 1-based ranks."""
    ttl = get_settings().leaderboard_cache_ttl_seconds
    cache_key = build_leaderboard_cache_key(tournament.id, page, per_page)
    if ttl > 0:
        cached = await _read_cache(redis, cache_key)
        if cached is not None:
            return cached

    offset = (page - 1) * per_page
    result = await db.execute(
        select(TournamentParticipant, User.username, User.display_name)
        .join(User, User.id == TournamentParticipant.user_id)
        .where(TournamentParticipant.tournament_id == tournament.id)
        .order_by(*_ranking_order(tournament))
        .offset(offset)
        .limit(per_page)
    )

    entries = []
    for index, (participant, username, display_name) in enumerate(result.all()):
        sent = participant.total_gift_value_sent
        received = participant.total_gift_value_received
        score = int(ranking_metric(tournament.type, sent, received))
        entries.append({
            "rank": offset + index + 1,
            "user_id": participant.user_id,
            "username": username,
            "display_name": display_name,
            "score": score,
            "score_dollars": format_minor_units(score),
            "gifts_sent": participant.gifts_sent,
            "gifts_received": participant.gifts_received,
            "total_gift_value_sent": sent,
            "total_gift_value_received": received,
            "total_sent_dollars": format_minor_units(sent),
            "total_received_dollars": format_minor_units(received),
            "has_earned_verification_badge": participant.has_earned_verification_badge,
            "verification_badge_duration": participant.verification_badge_duration,
        })

    total = (
        await db.execute(
            select(func.count(TournamentParticipant.id)).where(
                TournamentParticipant.tournament_id == tournament.id
            )
        )
    ).scalar_one()

    payload = {"entries": entries, "total": total, "page": page, "per_page": per_page}
    if ttl > 0:
        await _write_cache(redis, cache_key, payload, ttl)
    return payload


async def refresh_participant_ranks(db: AsyncSession, tournament_id: int) -> int:
    """Persist current_rank for every participant and lower best_rank where improved.

    Returns the number of participants ranked.
    """
    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        return 0

    result = await db.execute(
        select(
            TournamentParticipant.id,
            TournamentParticipant.best_rank,
        )
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(*_ranking_order(tournament))
    )
    rows = result.all()

    for rank, (participant_id, best_rank) in enumerate(rows, start=1):
        await db.execute(
            update(TournamentParticipant)
            .where(TournamentParticipant.id == participant_id)
            .values(
                current_rank=rank,
                best_rank=rank if best_rank is None else min(best_rank, rank),
            )
        )
    await db.commit()

    logger.debug("Refreshed ranks for %d participants in tournament %s", len(rows), tournament_id)
    return len(rows)

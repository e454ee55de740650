"""Reward reconciliation arq worker: periodic badge sweep and rank refresh.

Intervals (configurable):
- Badge sweep: every 10 minutes
- Rank refresh: every 5 minutes
- Verification lapse: hourly

Run with: arq tgl.workers.reconciliation_worker.WorkerSettings
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from tgl.config import get_settings
from tgl.database import close_db, get_session_factory, init_db
from tgl.middleware.logging import setup_logging
from tgl.tournaments.leaderboard_service import refresh_participant_ranks
from tgl.tournaments.reconciliation import active_tournament_ids, sweep_active_tournaments
from tgl.tournaments.verification_service import expire_lapsed_verifications

logger = logging.getLogger(__name__)


def every(minutes: int) -> set[int]:
    """Cron minute set for a fixed interval within the hour.

    Only divisors of 60 give even gaps across the hour boundary; Settings
    rejects anything else.
    """
    return set(range(0, 60, max(1, minutes)))


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Reconciliation worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Reconciliation worker shut down")


async def sweep_badges(ctx: dict) -> int:  # type: ignore[type-arg]
    """Re-run reward evaluation for every participant of every active tournament."""
    try:
        return await sweep_active_tournaments(get_session_factory(), ctx.get("redis"))
    except Exception:
        logger.exception("Reward sweep failed")
        return 0


async def refresh_leaderboard_ranks(ctx: dict) -> int:  # type: ignore[type-arg]
    """Persist current/best rank for participants of active tournaments."""
    session_factory = get_session_factory()
    async with session_factory() as db:
        tournament_ids = await active_tournament_ids(db)

    ranked = 0
    for tournament_id in tournament_ids:
        try:
            async with session_factory() as db:
                ranked += await refresh_participant_ranks(db, tournament_id)
        except Exception:
            logger.exception("Rank refresh failed for tournament %s", tournament_id)

    logger.info("Ranks refreshed: %d participants across %d tournaments", ranked, len(tournament_ids))
    return ranked


async def expire_verifications(ctx: dict) -> int:  # type: ignore[type-arg]
    """Clear verified status from users whose verification has run out."""
    try:
        async with get_session_factory()() as db:
            return len(await expire_lapsed_verifications(db))
    except Exception:
        logger.exception("Verification expiry check failed")
        return 0


_settings = get_settings()


class WorkerSettings:
    """arq worker settings for reward reconciliation."""

    functions = [sweep_badges, refresh_leaderboard_ranks, expire_verifications]
    cron_jobs = [
        cron(sweep_badges, minute=every(_settings.reconciliation_interval_minutes), run_at_startup=True),
        cron(refresh_leaderboard_ranks, minute=every(_settings.rank_refresh_interval_minutes)),
        cron(expire_verifications, minute=every(_settings.expiry_check_interval_minutes)),
    ]
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
    job_timeout = 600
    allow_abort_jobs = True

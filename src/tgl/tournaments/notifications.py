"""Outbound reward notifications via Redis pub/sub.

Delivery (push, in-app) belongs to the notification service subscribed to
the channel. Publishing is best-effort: a reward is never rolled back
because its notification failed.
"""

from __future__ import annotations

import json
import logging

from tgl.config import get_settings
from tgl.tournaments.tiers import badge_type_for

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "tournament-reward"


def build_reward_payload(user_id: int, tournament_id: int, duration_months: int) -> dict:
    return {
        "user_id": user_id,
        "type": NOTIFICATION_TYPE,
        "badge_type": badge_type_for(duration_months),
        "tournament_id": tournament_id,
        "duration_months": duration_months,
    }


async def notify_tournament_reward(
    redis: object,
    user_id: int,
    tournament_id: int,
    duration_months: int,
) -> bool:
    """Publish a tournament-reward event. Returns False when it could not be sent."""
    if redis is None:
        logger.debug("Redis unavailable, skipping reward notification for user %s", user_id)
        return False

    try:
        await redis.publish(  # type: ignore[union-attr]
            get_settings().notification_channel,
            json.dumps(build_reward_payload(user_id, tournament_id, duration_months)),
        )
    except Exception:
        logger.warning("Failed to publish tournament_reward notification", exc_info=True)
        return False
    return True

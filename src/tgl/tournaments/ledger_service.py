"""Tournament gift ledger writer.

Appends one immutable ledger row per gift-send and applies the five
aggregate increments (tournament count and value, sender and recipient
counters) in the same transaction. Rows are locked tournament first, then
participants in ascending user id, matching the reward evaluator's order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.db import locking
from tgl.db.models import Gift, Tournament, TournamentGift, TournamentParticipant
from tgl.tournaments.errors import (
    BelowMinimumGiftValue,
    GiftUnavailable,
    InvalidQuantity,
    NotAParticipant,
    RecipientNotParticipant,
    TournamentNotActive,
)
from tgl.tournaments.money import format_minor_units
from tgl.tournaments.tournament_service import get_tournament
from tgl.tournaments.types import ParticipantStatus, TournamentStatus

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 100


async def get_active_gift(db: AsyncSession, gift_id: int) -> Gift:
    """Catalog lookup. Raises GiftUnavailable for unknown or retired gifts."""
    result = await db.execute(
        select(Gift).where(Gift.id == gift_id, Gift.is_active.is_(True))
    )
    gift = result.scalar_one_or_none()
    if gift is None:
        raise GiftUnavailable()
    return gift


async def _lock_participants(
    db: AsyncSession, tournament_id: int, user_ids: set[int]
) -> dict[int, TournamentParticipant]:
    query = (
        select(TournamentParticipant)
        .where(
            TournamentParticipant.tournament_id == tournament_id,
            TournamentParticipant.user_id.in_(user_ids),
        )
        .order_by(TournamentParticipant.user_id)
    )
    result = await db.execute(locking.for_update(query).execution_options(populate_existing=True))
    return {p.user_id: p for p in result.scalars().all()}


async def record_gift(
    db: AsyncSession,
    tournament_id: int,
    sender_id: int,
    recipient_id: int,
    gift_id: int,
    quantity: int = 1,
    message: str | None = None,
    now: datetime | None = None,
) -> TournamentGift:
    """Record a gift sent inside a tournament.

    Preconditions are checked in order and each raises its own error;
    nothing is written unless all pass. Commits on success.
    """
    now = now or datetime.now(timezone.utc)
    try:
        tournament = await get_tournament(db, tournament_id, for_update=True)
        if tournament.status != TournamentStatus.ACTIVE:
            raise TournamentNotActive()

        participants = await _lock_participants(db, tournament_id, {sender_id, recipient_id})
        if sender_id not in participants:
            raise NotAParticipant()
        if recipient_id not in participants:
            raise RecipientNotParticipant()

        gift = await get_active_gift(db, gift_id)

        if not MIN_QUANTITY <= quantity <= MAX_QUANTITY:
            raise InvalidQuantity(f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}")

        total_value = gift.price * quantity
        if total_value < tournament.minimum_gift_value:
            raise BelowMinimumGiftValue(
                f"Gift value must be at least ${format_minor_units(tournament.minimum_gift_value)}"
            )

        entry = TournamentGift(
            tournament_id=tournament_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            gift_id=gift.id,
            quantity=quantity,
            unit_price=gift.price,
            total_value=total_value,
            message=message,
            leaderboard_points_awarded=total_value,
            created_at=now,
        )
        db.add(entry)

        await db.execute(
            update(Tournament)
            .where(Tournament.id == tournament_id)
            .values(
                total_gifts_count=Tournament.total_gifts_count + 1,
                total_gifts_value=Tournament.total_gifts_value + total_value,
                updated_at=now,
            )
        )
        await db.execute(
            update(TournamentParticipant)
            .where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.user_id == sender_id,
            )
            .values(
                gifts_sent=TournamentParticipant.gifts_sent + 1,
                total_gift_value_sent=TournamentParticipant.total_gift_value_sent + total_value,
                status=ParticipantStatus.ACTIVE.value,
            )
        )
        await db.execute(
            update(TournamentParticipant)
            .where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.user_id == recipient_id,
            )
            .values(
                gifts_received=TournamentParticipant.gifts_received + 1,
                total_gift_value_received=TournamentParticipant.total_gift_value_received + total_value,
                status=ParticipantStatus.ACTIVE.value,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(entry)
    logger.info(
        "Gift recorded: tournament=%s sender=%s recipient=%s value=%s",
        tournament_id, sender_id, recipient_id, total_value,
    )
    return entry

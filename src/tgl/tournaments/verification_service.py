"""User verification window updates for tournament rewards."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.db import locking
from tgl.db.models import User
from tgl.tournaments.errors import UserNotFound

logger = logging.getLogger(__name__)

VERIFICATION_METHOD_TOURNAMENT = "tournament_reward"


@dataclass(frozen=True)
class VerificationChange:
    old_expires_at: datetime | None
    new_expires_at: datetime
    extended: bool


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month -> Feb 28 (or 29), Aug 31 + 1 -> Sep 30.
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_new_expiry(
    is_verified: bool,
    current_expires_at: datetime | None,
    duration_months: int,
    now: datetime,
) -> tuple[datetime, bool]:
    """Return (new expiry, extended).

    A still-valid verification is extended from its current expiry; an
    unverified or lapsed user starts from now.
    """
    if is_verified and current_expires_at is not None and current_expires_at > now:
        return add_months(current_expires_at, duration_months), True
    return add_months(now, duration_months), False


async def apply_badge(
    db: AsyncSession,
    user_id: int,
    duration_months: int,
    tournament_id: int | None,
    trigger_amount: int,
    now: datetime | None = None,
) -> VerificationChange:
    """Extend or start the user's verification window.

    Locks the user row for the remainder of the caller's transaction.
    Does not commit.
    """
    now = now or datetime.now(timezone.utc)

    result = await db.execute(
        locking.for_update(select(User).where(User.id == user_id)).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound()

    old_expires_at = user.verification_expires_at
    new_expires_at, extended = compute_new_expiry(
        user.is_verified, old_expires_at, duration_months, now
    )

    user.is_verified = True
    user.verification_expires_at = new_expires_at
    if not extended:
        user.verified_at = now
    user.verified_by = None
    user.verification_method = VERIFICATION_METHOD_TOURNAMENT
    user.updated_at = now
    await db.flush()

    logger.info(
        "Verification %s for user %s until %s (tournament=%s trigger=%s)",
        "extended" if extended else "started", user_id, new_expires_at.isoformat(),
        tournament_id, trigger_amount,
    )
    return VerificationChange(old_expires_at=old_expires_at, new_expires_at=new_expires_at, extended=extended)


async def expire_lapsed_verifications(db: AsyncSession, now: datetime | None = None) -> list[int]:
    """Clear verification for users whose window has passed.

    Returns the ids of the users found lapsed. The expiry check
    is repeated in the UPDATE so a reward that extends a user between the
    two statements is not undone.
    """
    now = now or datetime.now(timezone.utc)
    lapsed = (
        User.is_verified.is_(True),
        User.verification_expires_at.is_not(None),
        User.verification_expires_at < now,
    )

    try:
        result = await db.execute(select(User.id).where(*lapsed).order_by(User.id))
        user_ids = list(result.scalars().all())
        if not user_ids:
            return []

        await db.execute(
            update(User)
            .where(User.id.in_(user_ids), *lapsed)
            .values(
                is_verified=False,
                verified_at=None,
                verified_by=None,
                verification_expires_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Verification lapsed for %d users", len(user_ids))
    return user_ids

"""Admin tournament endpoints: management, ledger inspection, reward sweeps."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.auth.dependencies import get_current_admin
from tgl.database import get_session, get_session_factory
from tgl.db.models import TournamentGift, TournamentParticipant, User, VerificationBadgeReward
from tgl.redis_client import get_redis_or_none
from tgl.tournaments.reconciliation import audit_tournament_aggregates, sweep_active_tournaments
from tgl.tournaments.reward_service import get_badge_statistics
from tgl.tournaments.schemas import (
    AdminParticipantResponse,
    AggregateAuditResponse,
    BadgeStatsResponse,
    CheckBadgesResponse,
    ExpireVerificationsResponse,
    StatusUpdateRequest,
    TournamentCreateRequest,
    TournamentGiftListResponse,
    TournamentGiftResponse,
    TournamentListResponse,
    TournamentResponse,
    TournamentStatsResponse,
    TournamentUpdateRequest,
)
from tgl.tournaments.tournament_service import (
    create_tournament,
    delete_tournament,
    get_tournament,
    list_tournaments,
    transition_status,
    update_tournament,
)
from tgl.tournaments.types import TournamentStatus
from tgl.tournaments.verification_service import expire_lapsed_verifications

router = APIRouter(
    prefix="/api/v1/admin/tournaments",
    tags=["Admin: Tournaments"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=TournamentListResponse)
async def admin_list_tournaments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: TournamentStatus | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    """All tournaments, including private ones."""
    items, total = await list_tournaments(
        db, page=page, limit=limit, status=status.value if status else None, public_only=False
    )
    return TournamentListResponse(
        tournaments=[TournamentResponse.from_model(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=TournamentResponse, status_code=201)
async def admin_create_tournament(
    body: TournamentCreateRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_session),
):
    tournament = await create_tournament(
        db,
        name=body.name,
        description=body.description,
        tournament_type=body.type.value,
        start_date=body.start_date,
        end_date=body.end_date,
        registration_deadline=body.registration_deadline,
        max_participants=body.max_participants,
        entry_fee=body.entry_fee,
        minimum_gift_value=body.minimum_gift_value,
        reward_tiers=[t.model_dump() for t in body.reward_tiers] if body.reward_tiers is not None else None,
        reward_metric=body.reward_metric.value,
        is_public=body.is_public,
        created_by=admin.id,
    )
    return TournamentResponse.from_model(tournament)


# Static paths are declared before /{tournament_id} so they are not captured by it


@router.post("/check-badges", response_model=CheckBadgesResponse)
async def admin_check_badges():
    """Run the reward reconciliation sweep now."""
    issued = await sweep_active_tournaments(get_session_factory(), get_redis_or_none())
    return CheckBadgesResponse(rewards_issued=issued)


@router.post("/check-expired", response_model=ExpireVerificationsResponse)
async def admin_check_expired(db: AsyncSession = Depends(get_session)):
    """Clear verified status from users whose verification has run out."""
    user_ids = await expire_lapsed_verifications(db)
    return ExpireVerificationsResponse(expired_users=len(user_ids), user_ids=user_ids)


@router.get("/badge-stats", response_model=BadgeStatsResponse)
async def admin_badge_stats(db: AsyncSession = Depends(get_session)):
    return BadgeStatsResponse(**await get_badge_statistics(db))


@router.put("/{tournament_id}", response_model=TournamentResponse)
async def admin_update_tournament(
    tournament_id: int,
    body: TournamentUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    """Partial update; omitted fields are left unchanged."""
    changes = {
        field: value
        for field, value in body.model_dump(exclude_unset=True).items()
        if value is not None or field == "description"
    }
    tournament = await update_tournament(db, tournament_id, changes)
    return TournamentResponse.from_model(tournament)


@router.patch("/{tournament_id}/status", response_model=TournamentResponse)
async def admin_update_status(
    tournament_id: int,
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    tournament = await transition_status(db, tournament_id, body.status.value)
    return TournamentResponse.from_model(tournament)


@router.delete("/{tournament_id}", status_code=204)
async def admin_delete_tournament(
    tournament_id: int,
    db: AsyncSession = Depends(get_session),
):
    await delete_tournament(db, tournament_id)
    return Response(status_code=204)


@router.get("/{tournament_id}/participants", response_model=list[AdminParticipantResponse])
async def admin_list_participants(
    tournament_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Participants in registration order with their usernames."""
    await get_tournament(db, tournament_id)
    result = await db.execute(
        select(TournamentParticipant, User.username, User.display_name)
        .join(User, User.id == TournamentParticipant.user_id)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.registered_at, TournamentParticipant.id)
    )
    return [
        AdminParticipantResponse(
            **_participant_fields(participant),
            username=username,
            display_name=display_name,
        )
        for participant, username, display_name in result.all()
    ]


@router.get("/{tournament_id}/gifts", response_model=TournamentGiftListResponse)
async def admin_list_gifts(
    tournament_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
):
    """Ledger entries, newest first."""
    await get_tournament(db, tournament_id)
    result = await db.execute(
        select(TournamentGift)
        .where(TournamentGift.tournament_id == tournament_id)
        .order_by(TournamentGift.created_at.desc(), TournamentGift.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    total = (
        await db.execute(
            select(func.count(TournamentGift.id)).where(TournamentGift.tournament_id == tournament_id)
        )
    ).scalar_one()
    return TournamentGiftListResponse(
        gifts=[TournamentGiftResponse.model_validate(g) for g in result.scalars().all()],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/{tournament_id}/stats", response_model=TournamentStatsResponse)
async def admin_tournament_stats(
    tournament_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Aggregates, ledger audit and rewards issued for one tournament."""
    tournament = await get_tournament(db, tournament_id)
    audit = await audit_tournament_aggregates(db, tournament_id)
    rewards_issued = (
        await db.execute(
            select(func.count(VerificationBadgeReward.id)).where(
                VerificationBadgeReward.tournament_id == tournament_id,
                VerificationBadgeReward.was_applied.is_(True),
            )
        )
    ).scalar_one()
    return TournamentStatsResponse(
        tournament=TournamentResponse.from_model(tournament),
        rewards_issued=rewards_issued,
        audit=AggregateAuditResponse(**audit),
    )


def _participant_fields(participant: TournamentParticipant) -> dict:
    return {
        field: getattr(participant, field)
        for field in AdminParticipantResponse.model_fields
        if field not in ("username", "display_name")
    }

"""Public tournament endpoints: browse, leaderboard, join, send gifts."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.auth.dependencies import get_current_user
from tgl.database import get_session
from tgl.db.models import User
from tgl.redis_client import get_redis_or_none
from tgl.tournaments.leaderboard_service import get_leaderboard
from tgl.tournaments.ledger_service import record_gift
from tgl.tournaments.reward_service import trigger_reward_evaluation
from tgl.tournaments.schemas import (
    JoinRequest,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ParticipantResponse,
    SendGiftRequest,
    TournamentGiftResponse,
    TournamentListResponse,
    TournamentResponse,
)
from tgl.tournaments.tournament_service import (
    get_tournament,
    join_tournament,
    list_active_tournaments,
    list_tournaments,
)
from tgl.tournaments.types import TournamentStatus, TournamentType

router = APIRouter(prefix="/api/v1/tournaments", tags=["Tournaments"])


@router.get("", response_model=TournamentListResponse)
async def list_public_tournaments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: TournamentStatus | None = Query(None),
    type: TournamentType | None = Query(None),  # noqa: A002
    db: AsyncSession = Depends(get_session),
):
    """Public tournaments, newest first."""
    items, total = await list_tournaments(
        db,
        page=page,
        limit=limit,
        status=status.value if status else None,
        tournament_type=type.value if type else None,
    )
    return TournamentListResponse(
        tournaments=[TournamentResponse.from_model(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/active", response_model=list[TournamentResponse])
async def get_active_tournaments(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_session),
):
    """Running public tournaments, largest first."""
    return [TournamentResponse.from_model(t) for t in await list_active_tournaments(db, limit=limit)]


@router.get("/{tournament_id}", response_model=TournamentResponse)
async def get_public_tournament(
    tournament_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Tournament details."""
    return TournamentResponse.from_model(await get_tournament(db, tournament_id, public_only=True))


@router.get("/{tournament_id}/leaderboard", response_model=LeaderboardResponse)
async def get_tournament_leaderboard(
    tournament_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Leaderboard ranked by the tournament type's metric."""
    tournament = await get_tournament(db, tournament_id, public_only=True)
    data = await get_leaderboard(db, tournament, page, limit, redis=get_redis_or_none())
    return LeaderboardResponse(
        entries=[LeaderboardEntryResponse(**e) for e in data["entries"]],
        total=data["total"],
        page=data["page"],
        per_page=data["per_page"],
    )


@router.post("/{tournament_id}/join", response_model=ParticipantResponse, status_code=201)
async def join(
    tournament_id: int,
    body: JoinRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Register the current user in a tournament."""
    participant = await join_tournament(
        db, tournament_id, user.id, room_id=body.room_id if body else None
    )
    return ParticipantResponse.model_validate(participant)


@router.post("/{tournament_id}/gifts", response_model=TournamentGiftResponse, status_code=201)
async def send_gift(
    tournament_id: int,
    body: SendGiftRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Send a gift to another participant.

    Reward evaluation for both sides runs after the response.
    """
    entry = await record_gift(
        db,
        tournament_id,
        sender_id=user.id,
        recipient_id=body.recipient_id,
        gift_id=body.gift_id,
        quantity=body.quantity,
        message=body.message,
    )
    # A self-gift names the same user twice
    user_ids = list(dict.fromkeys((entry.sender_id, entry.recipient_id)))
    background_tasks.add_task(trigger_reward_evaluation, tournament_id, user_ids)
    return TournamentGiftResponse.model_validate(entry)

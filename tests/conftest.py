"""Shared test fixtures.

Each test gets its own SQLite database file (aiosqlite) with the schema
created from the ORM metadata. Redis is left uninitialised: the rate
limiter fails open and services take ``redis=None``; tests that exercise
Redis paths pass an ``AsyncMock``.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tgl.auth.jwt import create_access_token, reset_keys
from tgl.config import get_settings
from tgl.database import close_db, get_engine, get_session_factory, init_db
from tgl.db.base import Base
from tgl.db.models import Gift, Tournament, TournamentParticipant, User
from tgl.main import create_app
from tgl.tournaments.tournament_service import join_tournament

# Small tiers so scenarios read in plain numbers: 100 -> 1 month, 200 -> 2, 1200 -> 12
TEST_TIERS = [
    {"threshold_amount": 100, "duration_months": 1},
    {"threshold_amount": 200, "duration_months": 2},
    {"threshold_amount": 1200, "duration_months": 12},
]


def _ensure_test_keys() -> None:
    """Generate an RSA key pair for JWT signing in a temp directory."""
    tmpdir = Path(tempfile.mkdtemp(prefix="tgl_test_keys_"))
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_path = tmpdir / "jwt_private.pem"
    public_path = tmpdir / "jwt_public.pem"
    private_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    os.environ["TGL_JWT_PRIVATE_KEY_PATH"] = str(private_path)
    os.environ["TGL_JWT_PUBLIC_KEY_PATH"] = str(public_path)
    os.environ["TGL_LOG_FORMAT"] = "console"


@pytest.fixture(scope="session", autouse=True)
def _test_settings():
    """Point settings at generated keys once per session."""
    _ensure_test_keys()
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()
    reset_keys()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database with all tables."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client against a fresh app."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make(username: str | None = None, **fields) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"user{counter['n']}",
            display_name=fields.pop("display_name", None),
            is_admin=fields.pop("is_admin", False),
            is_banned=fields.pop("is_banned", False),
            is_verified=fields.pop("is_verified", False),
            verified_at=fields.pop("verified_at", None),
            verification_expires_at=fields.pop("verification_expires_at", None),
            verified_by=fields.pop("verified_by", None),
            verification_method=fields.pop("verification_method", None),
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def make_gift(db_session: AsyncSession) -> Callable[..., Awaitable[Gift]]:
    async def _make(price: int, name: str = "Rose", is_active: bool = True) -> Gift:
        gift = Gift(name=name, price=price, is_active=is_active)
        db_session.add(gift)
        await db_session.commit()
        await db_session.refresh(gift)
        return gift

    return _make


@pytest_asyncio.fixture
async def make_tournament(db_session: AsyncSession) -> Callable[..., Awaitable[Tournament]]:
    async def _make(**fields) -> Tournament:
        now = datetime.now(timezone.utc)
        values = {
            "name": "Spring Cup",
            "description": None,
            "type": "combined",
            "status": "active",
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=6),
            "registration_deadline": now + timedelta(days=5),
            "max_participants": 100,
            "entry_fee": 0,
            "minimum_gift_value": 10,
            "reward_tiers": TEST_TIERS,
            "reward_metric": "ranking",
            "is_public": True,
            "created_by": None,
            "total_participants": 0,
            "total_gifts_value": 0,
            "total_gifts_count": 0,
        }
        values.update(fields)
        tournament = Tournament(**values)
        db_session.add(tournament)
        await db_session.commit()
        await db_session.refresh(tournament)
        return tournament

    return _make


@pytest_asyncio.fixture
async def enroll(db_session: AsyncSession) -> Callable[..., Awaitable[TournamentParticipant]]:
    """Register users through the real join path so aggregates stay consistent."""

    async def _enroll(tournament: Tournament, user: User) -> TournamentParticipant:
        return await join_tournament(db_session, tournament.id, user.id)

    return _enroll


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Bearer headers for a user, signed with the test key."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.username)}"}

    return _headers

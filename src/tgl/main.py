"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tgl.config import get_settings
from tgl.database import close_db, init_db
from tgl.health.router import router as health_router
from tgl.middleware import setup_middleware
from tgl.redis_client import close_redis, init_redis
from tgl.tournaments.admin_router import router as admin_tournaments_router
from tgl.tournaments.router import router as tournaments_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Tournament Gift Ledger API",
        description="Gift tournaments, leaderboards and verification badge rewards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(tournaments_router)
    app.include_router(admin_tournaments_router)

    return app

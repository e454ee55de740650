"""Browser access for the tournament client and the admin console."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tgl.config import Settings

# Methods the public and admin routers expose
_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    # The client reads rate limit headers to back off on gift sends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=_METHODS,
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )

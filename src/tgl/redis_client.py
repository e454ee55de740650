"""Process-wide Redis client.

Used for leaderboard caching, reward notifications and rate limit
counters. Every caller except the rate limiter treats Redis as optional and
asks for :func:`get_redis_or_none`.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the shared client; raises RuntimeError before app startup."""
    if _client is None:
        msg = "Redis client is not set up; init_redis() runs in the app lifespan"
        raise RuntimeError(msg)
    return _client


def get_redis_or_none() -> redis.Redis | None:
    """Shared client, or None when running without Redis."""
    return _client

"""Shared Redis client for notifier pub/sub."""

import redis.asyncio as aioredis

from anglerxp.config import Settings

_client: aioredis.Redis | None = None


async def init_redis(settings: Settings) -> aioredis.Redis | None:
    """Connect to ``settings.redis_url``. Nothing is opened when publishing is off."""
    global _client  # noqa: PLW0603
    if not settings.publish_events:
        return None
    _client = aioredis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        decode_responses=True,
        max_connections=10,
        health_check_interval=30,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = None


def get_redis() -> aioredis.Redis:
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client

"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from questline.redis_client import get_redis


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client, or None when Redis is not initialized."""
    yield get_redis()

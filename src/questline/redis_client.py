"""Optional Redis client for rate limiting and live event fan-out.

Quest progress never depends on Redis: when it is not initialized or not
reachable, callers get ``None`` or ``False`` and carry on.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

_client: redis.Redis | None = None


async def init_redis(url: str | None) -> None:
    """Create the client. An empty URL leaves Redis disabled."""
    global _client  # noqa: PLW0603
    if not url:
        _client = None
        return
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis | None:
    """The shared client, or None when Redis is disabled."""
    return _client


async def ping_redis() -> bool:
    """True if Redis is configured and answers PING."""
    if _client is None:
        return False
    try:
        return bool(await _client.ping())
    except (RedisError, OSError):
        return False

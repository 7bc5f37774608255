"""Redis-backed fixed-window rate limiting middleware."""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from questline.redis_client import get_redis

logger = structlog.get_logger()

# Probes are never limited
_EXEMPT_PATHS = frozenset({"/health", "/ready"})

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RETRY_AFTER_HEADER = "Retry-After"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit requests per client IP per window using Redis counters.

    Without Redis (not initialized or unreachable) requests pass through
    unlimited; quest progress must not depend on the limiter being up.
    """

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def _hit(self, client_ip: str) -> int | None:
        """Count this request; None when Redis is unavailable."""
        redis = get_redis()
        if redis is None:
            return None
        window = int(time.time()) // self.window_seconds
        rate_key = f"ratelimit:{client_ip}:{window}"
        try:
            pipe = redis.pipeline()
            pipe.incr(rate_key)
            pipe.expire(rate_key, self.window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except RedisError:
            logger.warning("rate_limit_unavailable", client_ip=client_ip)
            return None
        return int(results[0])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check the limit and return 429 once the window's budget is spent."""
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_count = await self._hit(client_ip)
        if current_count is None:
            return await call_next(request)

        if current_count > self.requests_per_window:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests, please try again later.",
                    "code": "rate_limited",
                    "retryable": True,
                },
                headers={
                    RETRY_AFTER_HEADER: str(self.window_seconds),
                    REMAINING_HEADER: "0",
                    LIMIT_HEADER: str(self.requests_per_window),
                },
            )

        response = await call_next(request)
        response.headers[REMAINING_HEADER] = str(max(0, self.requests_per_window - current_count))
        response.headers[LIMIT_HEADER] = str(self.requests_per_window)
        return response

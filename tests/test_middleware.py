"""Middleware tests: request ID, rate limiting, CORS, error handling."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from questline.config import get_settings
from questline.main import create_app
from questline.middleware.request_id import resolve_request_id


def _fake_redis(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, True])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_unsafe_request_id_replaced(client: AsyncClient) -> None:
    """Request ids that are not log-safe are replaced with a fresh UUID."""
    response = await client.get("/health", headers={"X-Request-Id": "bad id;injected"})
    assert response.headers["x-request-id"] != "bad id;injected"
    assert len(response.headers["x-request-id"]) == 36


def test_resolve_request_id_length_cap() -> None:
    assert resolve_request_id("a" * 64) == "a" * 64
    assert resolve_request_id("a" * 65) != "a" * 65
    assert len(resolve_request_id(None)) == 36


@pytest.mark.asyncio
async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    """Without Redis requests pass and carry no limit headers."""
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient, monkeypatch) -> None:
    """Limit headers reflect the window counter."""
    monkeypatch.setattr("questline.middleware.rate_limit.get_redis", lambda: _fake_redis(10))
    response = await client.get("/version")
    assert response.headers["x-ratelimit-limit"] == "1000"
    assert response.headers["x-ratelimit-remaining"] == "990"


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, monkeypatch) -> None:
    """Requests beyond the window budget get 429 with Retry-After."""
    monkeypatch.setattr("questline.middleware.rate_limit.get_redis", lambda: _fake_redis(1001))
    response = await client.get("/version")
    assert response.status_code == 429
    assert response.headers["retry-after"] == "900"
    assert response.json()["retryable"] is True


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, monkeypatch) -> None:
    """Probes are never limited."""
    monkeypatch.setattr("questline.middleware.rate_limit.get_redis", lambda: _fake_redis(5000))
    response = await client.get("/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/api/v1/quests",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_cors_exposes_rate_limit_headers(client: AsyncClient) -> None:
    """Browsers can read the request id and limiter headers."""
    response = await client.get("/version", headers={"Origin": "http://localhost:3000"})
    exposed = response.headers["access-control-expose-headers"].lower()
    for header in ("x-request-id", "x-ratelimit-remaining", "x-ratelimit-limit", "retry-after"):
        assert header in exposed


@pytest.mark.asyncio
async def test_rate_limit_can_be_disabled(database: str, monkeypatch) -> None:
    """With the limiter switched off even an exhausted window passes."""
    monkeypatch.setenv("QUESTLINE_RATE_LIMIT_ENABLED", "false")
    monkeypatch.setattr("questline.middleware.rate_limit.get_redis", lambda: _fake_redis(5000))
    get_settings.cache_clear()
    try:
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/version")
    finally:
        get_settings.cache_clear()
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with JSON body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_storage_outage_returns_503(client: AsyncClient, monkeypatch) -> None:
    """A database outage escaping a service is reported as retryable 503."""

    async def boom(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr("questline.progress.router.get_quest_status", boom)
    response = await client.get(
        "/api/v1/progress/quest/1/status",
        params={"wallet_address": "0x" + "ab" * 20},
    )
    assert response.status_code == 503
    assert response.json() == {
        "error": "Database temporarily unavailable, please retry",
        "code": "storage_unavailable",
        "retryable": True,
    }

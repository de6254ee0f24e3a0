"""Middleware tests: request ID, rate limiting, CORS, error handling."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from nbhd.middleware import rate_limit


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
    assert "x-request-id" in response.headers
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_rate_limit_fails_open_without_redis(client: AsyncClient) -> None:
    """Without Redis requests pass through and carry no rate limit headers."""
    response = await client.get("/api/v1/badges")
    assert response.status_code == 401
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """Rate limit headers are present on non-exempt endpoints."""
    monkeypatch.setattr(rate_limit, "redis_initialized", lambda: True)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(1))

    response = await client.get("/api/v1/badges")
    assert response.headers["x-ratelimit-limit"] == "100"
    assert response.headers["x-ratelimit-remaining"] == "99"


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """The 101st request in a window returns 429 with Retry-After."""
    monkeypatch.setattr(rate_limit, "redis_initialized", lambda: True)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(101))

    response = await client.get("/api/v1/badges")
    assert response.status_code == 429
    assert "retry-after" in response.headers
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """Health is never counted, even when the window is exhausted."""
    monkeypatch.setattr(rate_limit, "redis_initialized", lambda: True)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(500))

    response = await client.get("/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/health",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert "access-control-allow-origin" in response.headers


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with JSON body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.headers["content-type"] == "application/json"
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_validation_error_has_code(client: AsyncClient, alice, auth) -> None:
    """Malformed bodies return 422 with the validation code."""
    response = await client.post("/api/v1/direct/send", json={"content": "hi"}, headers=auth(alice))
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "validation"
    assert data["errors"]

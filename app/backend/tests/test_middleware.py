"""
Tests for rate limiting windows and request context headers.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.api.middleware import (
    REQUEST_ID_HEADER,
    RateLimitingMiddleware,
    RequestContextMiddleware,
    SlidingWindow,
)

from .conftest import PLAYER, OTHER_PLAYER


def test_sliding_window_expires_old_hits():
    window = SlidingWindow(limit=2, window_seconds=60)

    assert window.hit("a", now=0) == (True, 1)
    assert window.hit("a", now=10) == (True, 0)
    assert window.hit("a", now=20) == (False, 0)
    assert window.hit("b", now=20) == (True, 1)

    # First hit leaves the window
    assert window.hit("a", now=61) == (True, 0)


def test_sliding_window_forgets_idle_keys():
    window = SlidingWindow(limit=5, window_seconds=60)
    for n in range(100):
        window.hit(f"ip:10.0.0.{n}", now=n * 0.1)
    assert len(window) == 100

    # Keys whose last hit left the window are dropped on the next sweep
    assert window.hit("ip:10.0.1.1", now=200) == (True, 4)
    assert len(window) == 1


def build_app(max_requests=3, payment_requests=1) -> FastAPI:
    app = FastAPI()

    @app.get("/api/v1/payments/status/abc")
    async def payment_status():
        return {"ok": True}

    @app.post("/api/v1/payments/intents")
    async def create_intent():
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    app.add_middleware(
        RateLimitingMiddleware,
        max_requests=max_requests,
        window_seconds=60,
        payment_requests=payment_requests,
    )
    app.add_middleware(RequestContextMiddleware)
    return app


def bearer(wallet):
    return {"Authorization": f"Bearer {wallet}"}


@pytest.fixture
async def client():
    transport = ASGITransport(app=build_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.mark.asyncio
async def test_payment_writes_have_their_own_bucket(client):
    first = await client.post("/api/v1/payments/intents", headers=bearer(PLAYER))
    assert first.status_code == 200

    second = await client.post("/api/v1/payments/intents", headers=bearer(PLAYER))
    assert second.status_code == 429
    assert second.json()["error_code"] == "RATE_LIMIT_EXCEEDED"

    # Polling is counted separately
    polled = await client.get("/api/v1/payments/status/abc", headers=bearer(PLAYER))
    assert polled.status_code == 200
    assert polled.headers["X-RateLimit-Remaining"] == "2"

    # Another wallet has its own allowance
    other = await client.post("/api/v1/payments/intents", headers=bearer(OTHER_PLAYER))
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_wallet_keys_are_case_insensitive(client):
    checksummed = "0xAbCdEf0000000000000000000000000000000001"
    await client.post("/api/v1/payments/intents", headers=bearer(checksummed))
    response = await client.post("/api/v1/payments/intents", headers=bearer(checksummed.lower()))
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_request_id_is_echoed_or_generated(client):
    response = await client.get("/api/v1/payments/status/abc", headers={REQUEST_ID_HEADER: "req-1"})
    assert response.headers[REQUEST_ID_HEADER] == "req-1"

    response = await client.get("/api/v1/payments/status/abc")
    assert len(response.headers[REQUEST_ID_HEADER]) == 16


@pytest.mark.asyncio
async def test_unhandled_error_becomes_500(client):
    response = await client.get("/boom")
    assert response.status_code == 500
    assert response.json()["error_code"] == "INTERNAL_SERVER_ERROR"

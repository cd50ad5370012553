"""
Tests for the transform rate limiter.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from middleware.rate_limit import (
    InMemoryRateLimiterBackend,
    RateLimiter,
    RateLimitMiddleware,
    get_client_ip,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
class TestInMemoryBackend:
    async def test_fixed_window(self):
        clock = FakeClock()
        backend = InMemoryRateLimiterBackend(clock=clock)

        results = [await backend.hit("ip", 3, 60) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[0].reset_at == clock.now + 60
        assert results[3].retry_after(clock.now) == 60

    async def test_window_resets(self):
        clock = FakeClock()
        backend = InMemoryRateLimiterBackend(clock=clock)
        for _ in range(3):
            await backend.hit("ip", 3, 60)
        assert not (await backend.hit("ip", 3, 60)).allowed

        clock.now += 61
        assert (await backend.hit("ip", 3, 60)).allowed

    async def test_keys_are_independent(self):
        backend = InMemoryRateLimiterBackend(clock=FakeClock())
        await backend.hit("a", 1, 60)

        assert not (await backend.hit("a", 1, 60)).allowed
        assert (await backend.hit("b", 1, 60)).allowed

    async def test_lru_bound(self):
        backend = InMemoryRateLimiterBackend(clock=FakeClock())
        backend.MAX_KEYS = 2
        for key in ("a", "b", "c"):
            await backend.hit(key, 1, 60)

        # "a" was evicted, so it starts a fresh window
        assert (await backend.hit("a", 1, 60)).allowed

    async def test_reset(self):
        backend = InMemoryRateLimiterBackend(clock=FakeClock())
        await backend.hit("ip", 1, 60)
        await backend.reset("ip")
        assert (await backend.hit("ip", 1, 60)).allowed


def make_app(max_requests: int = 2) -> FastAPI:
    app = FastAPI()
    clock = FakeClock()
    app.add_middleware(
        RateLimitMiddleware,
        rate_limiter=RateLimiter(InMemoryRateLimiterBackend(clock=clock)),
        max_requests=max_requests,
        window_seconds=60,
        clock=clock,
    )

    @app.post("/api/transform")
    async def transform():
        return {"ok": True}

    @app.get("/api/presets")
    async def presets():
        return {"ok": True}

    return app


@pytest.mark.asyncio
class TestRateLimitMiddleware:
    async def test_limit_then_429(self):
        transport = ASGITransport(app=make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.post("/api/transform")
            second = await client.post("/api/transform")
            third = await client.post("/api/transform")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.status_code == 200

        assert third.status_code == 429
        body = third.json()
        assert body["error"] == "Rate limit exceeded. Please try again later."
        assert body["resetTime"] == (1_700_000_000 + 60) * 1000
        assert third.headers["Retry-After"] == "60"

    async def test_other_paths_not_limited(self):
        transport = ASGITransport(app=make_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [(await client.get("/api/presets")).status_code for _ in range(3)]

        assert statuses == [200, 200, 200]

    async def test_disabled_under_pytest_without_injected_limiter(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, max_requests=1)

        @app.post("/api/transform")
        async def transform():
            return {"ok": True}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [(await client.post("/api/transform")).status_code for _ in range(3)]

        assert statuses == [200, 200, 200]


def _request(host: str, headers: dict) -> MagicMock:
    request = MagicMock()
    request.client.host = host
    request.headers = headers
    return request


class TestClientIp:
    def test_untrusted_peer_ignores_forwarded_for(self):
        settings = MagicMock(TRUSTED_PROXIES=None)
        with patch("middleware.rate_limit.get_settings", return_value=settings):
            ip = get_client_ip(_request("203.0.113.9", {"X-Forwarded-For": "1.2.3.4"}))
        assert ip == "203.0.113.9"

    def test_trusted_proxy_uses_rightmost_untrusted(self):
        settings = MagicMock(TRUSTED_PROXIES="10.0.0.0/8")
        request = _request("10.0.0.2", {"X-Forwarded-For": "1.2.3.4, 198.51.100.7, 10.0.0.5"})
        with patch("middleware.rate_limit.get_settings", return_value=settings):
            ip = get_client_ip(request)
        assert ip == "198.51.100.7"

"""Rate limiting middleware and utilities.

Implements fixed window counting per client IP for the transform endpoints.

SECURITY NOTES:
- In-memory rate limiter is lost on restart. For production with multiple
  instances, use Redis by setting REDIS_URL in environment.
- X-Forwarded-For header is only trusted when TRUSTED_PROXIES is configured.
  This prevents IP spoofing attacks.
"""

import asyncio
import ipaddress
import logging
import os
import sys
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, List, NamedTuple, Optional, Tuple

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from config import AppMode, get_settings

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/api/transform"
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


class RateLimitResult(NamedTuple):
    allowed: bool
    remaining: int
    # Epoch seconds at which the current window closes
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, int(self.reset_at - now + 0.999))


class RateLimiterBackend(ABC):
    """Abstract base class for rate limiter storage backends."""

    @abstractmethod
    async def hit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        """Count one request against ``key`` and report whether it is allowed."""

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""


class InMemoryRateLimiterBackend(RateLimiterBackend):
    """
    Process-local fixed window counters.

    NOT PROCESS-SAFE: each worker keeps its own counters, so with N workers the
    effective limit is N times the configured one. Set REDIS_URL in production.

    The number of tracked keys is bounded; the least recently used windows are
    evicted first.
    """

    MAX_KEYS = 10000

    def __init__(self, clock: Callable[[], float] = time.time):
        # key -> (count, reset_at)
        self._windows: "OrderedDict[str, Tuple[int, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._clock = clock

    async def hit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        async with self._lock:
            current = self._windows.get(key)

            if current is None or now > current[1]:
                reset_at = now + window_seconds
                self._store(key, 1, reset_at)
                return RateLimitResult(True, max_requests - 1, reset_at)

            count, reset_at = current
            if count >= max_requests:
                self._windows.move_to_end(key)
                return RateLimitResult(False, 0, reset_at)

            self._store(key, count + 1, reset_at)
            return RateLimitResult(True, max(0, max_requests - count - 1), reset_at)

    def _store(self, key: str, count: int, reset_at: float) -> None:
        self._windows[key] = (count, reset_at)
        self._windows.move_to_end(key)
        while len(self._windows) > self.MAX_KEYS:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug(f"Rate limiter LRU eviction: removed {evicted}")

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)


class RedisRateLimiterBackend(RateLimiterBackend):
    """
    Redis fixed window counters (INCR + EXPIRE), shared by every instance.
    """

    def __init__(self, redis_url: str, clock: Callable[[], float] = time.time):
        self._redis_url = redis_url
        self._redis = None
        self._clock = clock

    async def _get_redis(self):
        """Lazy initialization of Redis connection."""
        if self._redis is None:
            import redis.asyncio as redis

            client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            try:
                await client.ping()
            except Exception as e:
                logger.error(f"Failed to connect to Redis: {e}")
                raise
            self._redis = client
            logger.info("Redis rate limiter backend initialized successfully")
        return self._redis

    async def hit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        redis = await self._get_redis()
        redis_key = f"ratelimit:{key}"

        pipe = redis.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = await pipe.execute()

        if count == 1 or ttl < 0:
            # First hit opens the window
            await redis.expire(redis_key, window_seconds)
            ttl = window_seconds

        reset_at = self._clock() + ttl
        if count > max_requests:
            return RateLimitResult(False, 0, reset_at)
        return RateLimitResult(True, max_requests - count, reset_at)

    async def reset(self, key: str) -> None:
        redis = await self._get_redis()
        await redis.delete(f"ratelimit:{key}")


class RateLimiter:
    """
    Fixed window rate limiter over a pluggable backend.

    Uses Redis when REDIS_URL is set, otherwise in-process memory.
    """

    def __init__(self, backend: Optional[RateLimiterBackend] = None):
        if backend:
            self._backend = backend
            return

        settings = get_settings()
        if settings.REDIS_URL:
            logger.info("Using Redis rate limiter backend")
            self._backend = RedisRateLimiterBackend(settings.REDIS_URL)
        else:
            message = (
                "Using in-memory rate limiter. Rate limits will be lost on restart. "
                "Set REDIS_URL for production use with multiple instances."
            )
            if settings.APP_MODE == AppMode.DEV:
                logger.debug(message)
            else:
                logger.warning(message)
            self._backend = InMemoryRateLimiterBackend()

    async def hit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        """
        Count a request for ``key``.

        Args:
            key: Unique identifier (e.g. "transform:<ip>")
            max_requests: Maximum requests allowed per window
            window_seconds: Window length in seconds
        """
        return await self._backend.hit(key, max_requests, window_seconds)

    async def reset(self, key: str) -> None:
        await self._backend.reset(key)


def _parse_trusted_proxies() -> List[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Networks allowed to set X-Forwarded-For. Empty unless TRUSTED_PROXIES is set."""
    trusted_proxies_str = get_settings().TRUSTED_PROXIES
    if not trusted_proxies_str:
        return []

    networks = []
    for proxy in (p.strip() for p in trusted_proxies_str.split(",")):
        if not proxy:
            continue
        try:
            networks.append(ipaddress.ip_network(proxy, strict=False))
        except ValueError as e:
            logger.warning(f"Invalid trusted proxy network '{proxy}': {e}")
    return networks


def _is_ip_trusted(ip: str, trusted_networks: List) -> bool:
    try:
        ip_addr = ipaddress.ip_address(ip)
        return any(ip_addr in network for network in trusted_networks)
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """
    Client IP for rate limiting.

    X-Forwarded-For is only consulted when the direct peer is a trusted proxy;
    the rightmost address that is not itself a trusted proxy is the client.
    """
    trusted_networks = _parse_trusted_proxies()
    direct_ip = request.client.host if request.client else None
    if not direct_ip:
        return "unknown"

    if not _is_ip_trusted(direct_ip, trusted_networks):
        return direct_ip

    forwarded_for = request.headers.get("X-Forwarded-For")
    if not forwarded_for:
        real_ip = (request.headers.get("X-Real-IP") or "").strip()
        if real_ip:
            try:
                ipaddress.ip_address(real_ip)
                return real_ip
            except ValueError:
                logger.warning(f"Invalid X-Real-IP header: {real_ip}")
        return direct_ip

    ips = [ip.strip() for ip in forwarded_for.split(",")]
    for ip in reversed(ips):
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            logger.warning(f"Invalid IP in X-Forwarded-For: {ip}")
            continue
        if not _is_ip_trusted(ip, trusted_networks):
            return ip

    return direct_ip


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP limit on POST /api/transform and its sub-paths.

    Disabled under pytest unless a limiter is passed in explicitly.
    """

    def __init__(
        self,
        app,
        rate_limiter: Optional[RateLimiter] = None,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        settings = get_settings()
        self.enabled = rate_limiter is not None or "pytest" not in sys.modules
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_requests = max_requests or settings.RATE_LIMIT_TRANSFORM
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW
        self.clock = clock

    def _applies_to(self, request: Request) -> bool:
        return request.method == "POST" and request.url.path.startswith(RATE_LIMITED_PREFIX)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or os.getenv("DISABLE_RATE_LIMIT") == "1":
            return await call_next(request)
        if not self._applies_to(request):
            return await call_next(request)

        client_ip = get_client_ip(request)
        limit_key = f"transform:{client_ip}"
        result = await self.rate_limiter.hit(limit_key, self.max_requests, self.window_seconds)

        if not result.allowed:
            retry_after = result.retry_after(self.clock())
            logger.warning(f"Rate limit exceeded for {limit_key} (path={request.url.path})")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": RATE_LIMIT_MESSAGE,
                    # milliseconds since the epoch
                    "resetTime": int(result.reset_at * 1000),
                },
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(result.reset_at)),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(int(result.reset_at))
        return response

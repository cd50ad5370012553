"""Middleware package: authentication gate, rate limiting and security headers."""

from .gatekeeper import GatekeeperMiddleware
from .rate_limit import RateLimitMiddleware, RateLimiter
from .security import SecurityHeadersMiddleware

__all__ = [
    "GatekeeperMiddleware",
    "RateLimitMiddleware",
    "RateLimiter",
    "SecurityHeadersMiddleware",
]

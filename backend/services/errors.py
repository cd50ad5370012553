"""Service-layer exceptions mapped to HTTP responses.

Route handlers and services raise these; the exception handlers installed in
``main.py`` render them as ``{"error": message, "details"?: ...}``.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    """Missing or malformed request fields (400)."""
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    """
    Bad credentials or a missing/expired/invalid token (401).

    Messages stay generic so responses do not reveal which accounts exist.
    """
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AppError):
    """Authenticated, but the resource belongs to someone else (403)."""
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    """Referenced user, session, or resource is absent (404)."""
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    """Duplicate creation, e.g. an email that is already registered (409)."""
    status_code = 409
    default_message = "Conflict"


class RateLimitError(AppError):
    """Too many requests in the current window (429)."""
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: int = 60,
        details: Any = None,
    ):
        super().__init__(message, details)
        self.retry_after = retry_after


class InternalError(AppError):
    """Storage, hashing or signing failure (500)."""
    status_code = 500


__all__ = [
    "AppError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "InternalError",
]

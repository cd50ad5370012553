import logging
import warnings
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


logger = logging.getLogger(__name__)


# Default insecure secrets - MUST be changed in production
_DEFAULT_ACCESS_TOKEN_SECRET = "access_token_secret"
_DEFAULT_REFRESH_TOKEN_SECRET = "refresh_token_secret"


class AppMode(str, Enum):
    DEV = "dev"
    PROD = "prod"


class Settings(BaseSettings):
    # Application mode - defaults to DEV for safety
    # SECURITY: In production, explicitly set APP_MODE=prod
    APP_MODE: AppMode = AppMode.DEV

    # Debug mode - MUST be False in production
    # Adds sanitized exception text to 500 responses
    DEBUG: bool = False

    # Database (SQLite default for dev, use PostgreSQL in production)
    DATABASE_URL: str = "sqlite+aiosqlite:///./textmorph.db"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # JWT Configuration
    # Access and refresh tokens are signed with independent secrets so that a
    # leaked access secret cannot be used to forge refresh tokens.
    # Generate with: python -c "import secrets; print(secrets.token_urlsafe(64))"
    ACCESS_TOKEN_SECRET: str = _DEFAULT_ACCESS_TOKEN_SECRET
    REFRESH_TOKEN_SECRET: str = _DEFAULT_REFRESH_TOKEN_SECRET
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Re-check the refresh token's own signature on top of the session row lookup
    VERIFY_REFRESH_SIGNATURE: bool = True

    # Password hashing cost (bcrypt log2 rounds)
    BCRYPT_ROUNDS: int = 10

    # Expired session rows are deleted by a background sweep
    SESSION_SWEEP_INTERVAL_SECONDS: int = 3600

    # Rate Limiting
    RATE_LIMIT_TRANSFORM: int = 10  # requests per window per IP on /api/transform
    RATE_LIMIT_WINDOW: int = 60  # window in seconds

    # Generations per rolling 24h for non-pro users
    DAILY_GENERATION_LIMIT: int = 50

    # Artificial latency of the mock transformer (seconds)
    MOCK_TRANSFORM_DELAY_SECONDS: float = 0.0

    # Redis URL for shared rate limiting (optional, in-memory used if not set)
    # IMPORTANT: For production with multiple instances, set this to enable shared counters
    REDIS_URL: Optional[str] = None

    # Trusted proxy networks (comma-separated CIDR notation)
    # Example: "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16"
    # SECURITY: Only IPs from these networks are trusted to set X-Forwarded-For headers
    TRUSTED_PROXIES: Optional[str] = None

    CORS_ALLOWED_ORIGINS: str = ""  # Comma-separated list of allowed origins

    @property
    def secure_cookies(self) -> bool:
        """Auth cookies carry the Secure flag only in production."""
        return self.APP_MODE == AppMode.PROD

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Get allowed CORS origins.

        SECURITY: In production, never return ["*"] as this allows any origin
        to make authenticated requests. Always configure CORS_ALLOWED_ORIGINS
        explicitly in production.
        """
        origins = []

        if self.APP_MODE == AppMode.DEV:
            origins = [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ]

        if self.CORS_ALLOWED_ORIGINS:
            custom_origins = [
                o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()
            ]
            origins.extend(custom_origins)

        if not origins and self.APP_MODE == AppMode.PROD:
            logger.warning(
                "SECURITY WARNING: No CORS_ALLOWED_ORIGINS configured in production. "
                "Cross-origin requests will be blocked."
            )

        return origins

    @property
    def LOG_LEVEL(self) -> str:
        return "DEBUG" if self.DEBUG else "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env variables


def _validate_settings(settings: Settings) -> Settings:
    """
    Validate settings and warn/error on security issues.

    SECURITY: This function ensures critical security settings are properly
    configured in production environments.
    """
    if settings.APP_MODE == AppMode.PROD:
        if (
            settings.ACCESS_TOKEN_SECRET == _DEFAULT_ACCESS_TOKEN_SECRET
            or settings.REFRESH_TOKEN_SECRET == _DEFAULT_REFRESH_TOKEN_SECRET
        ):
            error_msg = (
                "CRITICAL SECURITY ERROR: Default token secrets are being used in production! "
                "Set ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET environment variables."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        if settings.ACCESS_TOKEN_SECRET == settings.REFRESH_TOKEN_SECRET:
            error_msg = (
                "CRITICAL SECURITY ERROR: ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET "
                "must be different."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        if settings.DEBUG:
            error_msg = (
                "CRITICAL SECURITY ERROR: DEBUG=True in production! "
                "Debug mode exposes exception details in error responses."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        for name in ("ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET"):
            if len(getattr(settings, name)) < 32:
                warnings.warn(
                    f"{name} appears to be weak (less than 32 characters). "
                    "Consider using a longer, more random key for production.",
                    SecurityWarning,
                    stacklevel=2,
                )

        if not settings.REDIS_URL:
            logger.warning(
                "REDIS_URL not configured in production. "
                "In-memory rate limiting is NOT shared between workers or instances."
            )

    return settings


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    This function validates settings on first access and raises errors
    for critical security misconfigurations in production.
    """
    settings = Settings()
    return _validate_settings(settings)

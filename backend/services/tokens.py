"""Signing and verification of access and refresh JWTs.

Access tokens are short-lived and self-contained: a valid signature and an
unexpired ``exp`` are enough to identify the caller. Refresh tokens are
long-lived and only count when a matching session row exists as well (see
``services.sessions``). The two classes are signed with independent secrets.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from jose import JWTError, jwt

from config import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationError(str, Enum):
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"
    MISSING_CLAIMS = "missing_claims"


@dataclass(frozen=True)
class AccessClaims:
    """Identity carried inside an access token."""
    id: str
    email: str
    name: str
    is_pro: bool

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "isPro": self.is_pro,
        }


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str


T = TypeVar("T")


@dataclass(frozen=True)
class VerificationResult(Generic[T]):
    """Either verified claims or the reason verification failed."""
    claims: Optional[T] = None
    error: Optional[VerificationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.claims is not None

    @classmethod
    def success(cls, claims: T) -> "VerificationResult[T]":
        return cls(claims=claims)

    @classmethod
    def failure(cls, error: VerificationError) -> "VerificationResult[T]":
        return cls(error=error)


class TokenCodec:
    """
    HMAC-signed tokens with fail-closed verification.

    ``verify_*`` never raises: a malformed token, a signature mismatch, the
    wrong token class, or ``now >= exp`` all come back as a failed
    ``VerificationResult``.
    """

    def __init__(
        self,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
        clock: Clock = utc_now,
    ):
        settings = get_settings()
        self.access_secret = access_secret or settings.ACCESS_TOKEN_SECRET
        self.refresh_secret = refresh_secret or settings.REFRESH_TOKEN_SECRET
        self.algorithm = algorithm or settings.ALGORITHM
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.clock = clock

    def _expiry(self, ttl: timedelta) -> float:
        # Fractional seconds are kept so the lifetime is exact, not rounded down
        return (self.clock() + ttl).timestamp()

    def sign_access(self, claims: AccessClaims) -> str:
        payload = claims.to_payload()
        payload["type"] = ACCESS_TOKEN_TYPE
        payload["exp"] = self._expiry(self.access_ttl)
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def sign_refresh(self, user_id: str) -> str:
        payload = {
            "userId": user_id,
            "type": REFRESH_TOKEN_TYPE,
            "exp": self._expiry(self.refresh_ttl),
            # Two refresh tokens minted in the same second must still differ,
            # since the token string is the session's primary lookup key.
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)

    def refresh_expires_at(self) -> datetime:
        return self.clock() + self.refresh_ttl

    def _decode(self, token: Optional[str], secret: str, expected_type: str):
        if not token or not isinstance(token, str):
            return None, VerificationError.MALFORMED

        try:
            jwt.get_unverified_header(token)
        except JWTError:
            return None, VerificationError.MALFORMED

        try:
            # exp is checked below against the injected clock
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None, VerificationError.BAD_SIGNATURE

        if payload.get("type") != expected_type:
            return None, VerificationError.WRONG_TYPE

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return None, VerificationError.MISSING_CLAIMS
        if self.clock().timestamp() >= exp:
            return None, VerificationError.EXPIRED

        return payload, None

    def verify_access(self, token: Optional[str]) -> VerificationResult[AccessClaims]:
        payload, error = self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)
        if error is not None:
            return VerificationResult.failure(error)

        user_id = payload.get("id")
        email = payload.get("email")
        if not isinstance(user_id, str) or not isinstance(email, str):
            return VerificationResult.failure(VerificationError.MISSING_CLAIMS)

        return VerificationResult.success(
            AccessClaims(
                id=user_id,
                email=email,
                name=str(payload.get("name") or ""),
                is_pro=bool(payload.get("isPro", False)),
            )
        )

    def verify_refresh(self, token: Optional[str]) -> VerificationResult[RefreshClaims]:
        payload, error = self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)
        if error is not None:
            return VerificationResult.failure(error)

        user_id = payload.get("userId")
        if not isinstance(user_id, str):
            return VerificationResult.failure(VerificationError.MISSING_CLAIMS)

        return VerificationResult.success(RefreshClaims(user_id=user_id))

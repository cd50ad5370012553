"""Authentication facade: register, login, refresh, logout and "who am I".

The service never touches HTTP. Every operation returns an ``AuthResult``;
the route layer decides how the issued credentials reach the client.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from models.user import User
from services.credential_store import CredentialStore
from services.errors import (
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from services.passwords import PasswordHasher
from services.sessions import SessionManager
from services.tokens import AccessClaims, TokenCodec

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass(frozen=True)
class UserIdentity:
    """The public projection of a user. Never carries the password hash."""
    id: str
    email: str
    name: str
    is_pro: bool

    @classmethod
    def from_user(cls, user: User) -> "UserIdentity":
        return cls(id=user.id, email=user.email, name=user.name, is_pro=bool(user.is_pro))

    @classmethod
    def from_claims(cls, claims: AccessClaims) -> "UserIdentity":
        return cls(id=claims.id, email=claims.email, name=claims.name, is_pro=claims.is_pro)

    def to_claims(self) -> AccessClaims:
        return AccessClaims(id=self.id, email=self.email, name=self.name, is_pro=self.is_pro)

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name, "isPro": self.is_pro}


@dataclass(frozen=True)
class IssuedCredentials:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    identity: UserIdentity
    credentials: Optional[IssuedCredentials] = None


class AuthService:
    """Orchestrates the credential store, hasher, token codec and sessions."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        sessions: SessionManager,
    ):
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.sessions = sessions
        self._dummy_hash: Optional[str] = None

    async def _issue(self, identity: UserIdentity) -> IssuedCredentials:
        access_token = self.codec.sign_access(identity.to_claims())
        refresh_token = await self.sessions.create_session(identity.id)
        return IssuedCredentials(access_token=access_token, refresh_token=refresh_token)

    async def _burn_verify(self, password: str) -> None:
        # Unknown emails still pay for one bcrypt check.
        if self._dummy_hash is None:
            self._dummy_hash = await self.hasher.hash("textmorph-unknown-user")
        await self.hasher.verify(password, self._dummy_hash)

    async def register(self, email: str, password: str, name: str) -> AuthResult:
        if not email or not password or not name:
            raise ValidationError("Email, password, and name are required")

        if await self.store.find_user_by_email(email) is not None:
            raise ConflictError("User with this email already exists")

        password_hash = await self.hasher.hash(password)
        user = await self.store.create_user(
            email=email, password_hash=password_hash, name=name, is_pro=False
        )
        identity = UserIdentity.from_user(user)
        credentials = await self._issue(identity)
        await self.store.commit()

        logger.info(f"User registered: {identity.id}")
        return AuthResult(identity=identity, credentials=credentials)

    async def login(self, email: str, password: str) -> AuthResult:
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = await self.store.find_user_by_email(email)
        if user is None:
            await self._burn_verify(password)
            logger.info("Login failed: unknown email")
            raise AuthenticationError(INVALID_CREDENTIALS)

        try:
            matches = await self.hasher.verify(password, user.password_hash)
        except ValueError:
            logger.error(f"Stored password hash for user {user.id} is malformed")
            raise InternalError()

        if not matches:
            logger.info(f"Login failed: wrong password for user {user.id}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        identity = UserIdentity.from_user(user)
        credentials = await self._issue(identity)
        await self.store.commit()

        logger.info(f"User logged in: {identity.id}")
        return AuthResult(identity=identity, credentials=credentials)

    async def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        """
        Mint a new access token from a live refresh session.

        The refresh token is handed back unchanged; it is not rotated.
        """
        if not refresh_token:
            raise AuthenticationError("Refresh token is required")

        user_id = await self.sessions.validate_session(refresh_token)
        if user_id is None:
            logger.info("Refresh rejected: invalid or expired session")
            raise AuthenticationError("Invalid or expired refresh token")

        user = await self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        identity = UserIdentity.from_user(user)
        access_token = self.codec.sign_access(identity.to_claims())
        return AuthResult(
            identity=identity,
            credentials=IssuedCredentials(access_token=access_token, refresh_token=refresh_token),
        )

    async def logout(self, refresh_token: Optional[str]) -> None:
        if refresh_token:
            await self.sessions.delete_session(refresh_token)
            await self.store.commit()
        logger.info("User logged out")

    async def me(self, access_token: Optional[str]) -> AuthResult:
        if not access_token:
            raise AuthenticationError("Not authenticated")

        result = self.codec.verify_access(access_token)
        if not result.ok:
            raise AuthenticationError("Invalid token")

        user = await self.store.find_user_by_id(result.claims.id)
        if user is None:
            raise NotFoundError("User not found")

        return AuthResult(identity=UserIdentity.from_user(user))

    def identity_from_access(self, access_token: Optional[str]) -> Optional[UserIdentity]:
        """Identity carried by a valid access token, without a storage lookup."""
        if not access_token:
            return None
        result = self.codec.verify_access(access_token)
        if not result.ok:
            return None
        return UserIdentity.from_claims(result.claims)

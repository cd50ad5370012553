from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.cookies import ACCESS_TOKEN_COOKIE
from db.database import get_db
from services.auth import AuthService, UserIdentity
from services.credential_store import CredentialStore
from services.errors import AuthenticationError
from services.history import HistoryService
from services.passwords import PasswordHasher
from services.sessions import SessionManager
from services.tokens import TokenCodec
from services.transformer import TextTransformer
from services.usage import UsageService


def build_auth_service(db: AsyncSession) -> AuthService:
    """Wire an AuthService over one database session."""
    store = CredentialStore(db)
    codec = TokenCodec()
    return AuthService(
        store=store,
        hasher=PasswordHasher(),
        codec=codec,
        sessions=SessionManager(store, codec),
    )


async def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    return build_auth_service(db)


async def get_auth_user(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> Optional[UserIdentity]:
    """
    Who is calling, or None.

    The gatekeeper stores the identity on ``request.state`` after an inline
    refresh, when the request's own accessToken cookie is already stale.
    """
    identity = getattr(request.state, "auth_identity", None)
    if identity is not None:
        return identity
    return auth.identity_from_access(request.cookies.get(ACCESS_TOKEN_COOKIE))


async def require_user(
    user: Optional[UserIdentity] = Depends(get_auth_user),
) -> UserIdentity:
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


async def get_transformer() -> TextTransformer:
    return TextTransformer()


async def get_history_service(db: AsyncSession = Depends(get_db)) -> HistoryService:
    return HistoryService(db)


async def get_usage_service(db: AsyncSession = Depends(get_db)) -> UsageService:
    return UsageService(db)

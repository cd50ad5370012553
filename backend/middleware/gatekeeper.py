"""Authentication gate in front of every protected route.

A request is let through when its accessToken cookie verifies. Otherwise a
live refreshToken is exchanged for a new access token inline and the new
cookies ride back on the downstream response.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, RedirectResponse, Response

from api.cookies import (
    ACCESS_TOKEN_COOKIE,
    CURRENT_SESSION_COOKIE,
    REFRESH_TOKEN_COOKIE,
    set_auth_cookies,
)
from api.dependencies import build_auth_service
from services.auth import IssuedCredentials, UserIdentity
from services.errors import AppError
from services.tokens import TokenCodec

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES = (
    "/login",
    "/register",
    "/cookies",
    "/terms",
    "/privacy",
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/refresh",
    "/api/auth/logout",
    "/api/health",
    "/health",
    "/api/presets",
    "/api/languages",
    "/docs",
    "/redoc",
    "/openapi.json",
)

TRANSFORM_PREFIX = "/api/transform"
CURRENT_SESSION_HEADER = b"x-current-session-id"
AUTH_REQUIRED = "Authentication required"


def is_public_path(path: str) -> bool:
    if path == "/":
        return True
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


@dataclass(frozen=True)
class GateDecision:
    identity: Optional[UserIdentity] = None
    # Set only when the access token was re-minted during this request
    credentials: Optional[IssuedCredentials] = None

    @property
    def authorized(self) -> bool:
        return self.identity is not None


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """
    Lets public paths and CORS pre-flights through untouched.

    Protected API paths answer 401 when no usable token is present; page
    paths are redirected to the login page.
    """

    def __init__(self, app, codec: Optional[TokenCodec] = None):
        super().__init__(app)
        self.codec = codec

    def _codec(self) -> TokenCodec:
        # Built lazily so tests can swap settings before the first request
        if self.codec is None:
            self.codec = TokenCodec()
        return self.codec

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or is_public_path(path):
            return await call_next(request)

        decision = await self._authenticate(request)
        if not decision.authorized:
            return self._unauthorized(request)

        request.state.auth_identity = decision.identity
        if decision.credentials is not None:
            request.state.access_token = decision.credentials.access_token

        if path.startswith(TRANSFORM_PREFIX):
            self._forward_current_session(request)

        response = await call_next(request)

        if decision.credentials is not None:
            set_auth_cookies(
                response,
                access_token=decision.credentials.access_token,
                refresh_token=decision.credentials.refresh_token,
            )
        return response

    async def _authenticate(self, request: Request) -> GateDecision:
        access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        if access_token:
            result = self._codec().verify_access(access_token)
            if result.ok:
                return GateDecision(identity=UserIdentity.from_claims(result.claims))
            logger.debug(f"Access token rejected ({result.error.value}) for {request.url.path}")

        refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        if not refresh_token:
            return GateDecision()

        return await self._refresh_inline(request, refresh_token)

    async def _refresh_inline(self, request: Request, refresh_token: str) -> GateDecision:
        session_factory = request.app.state.session_factory
        async with session_factory() as db:
            auth = build_auth_service(db)
            try:
                result = await auth.refresh(refresh_token)
            except AppError as e:
                logger.info(f"Inline refresh failed for {request.url.path}: {e.message}")
                return GateDecision()

        logger.debug(f"Access token refreshed inline for user {result.identity.id}")
        return GateDecision(identity=result.identity, credentials=result.credentials)

    def _forward_current_session(self, request: Request) -> None:
        """Expose the currentSessionId cookie to handlers as a request header."""
        headers = [
            (name, value)
            for name, value in request.scope["headers"]
            if name.lower() != CURRENT_SESSION_HEADER
        ]
        session_id = request.cookies.get(CURRENT_SESSION_COOKIE)
        if session_id:
            headers.append((CURRENT_SESSION_HEADER, session_id.encode("latin-1")))
        request.scope["headers"] = headers

    def _unauthorized(self, request: Request) -> Response:
        path = request.url.path
        if path.startswith("/api/"):
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": AUTH_REQUIRED},
            )
        return RedirectResponse(
            url=f"/login?from={quote(path, safe='/')}",
            status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        )

import logging

from fastapi import APIRouter, Depends, Request, Response, status

from api.cookies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    clear_auth_cookies,
    set_auth_cookies,
)
from api.dependencies import get_auth_service
from schemas.auth import AuthUserResponse, LoginRequest, MessageResponse, RegisterRequest
from services.auth import AuthResult, AuthService
from services.errors import ValidationError

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _apply_credentials(response: Response, result: AuthResult) -> None:
    """Only the HTTP layer turns issued credentials into cookies."""
    if result.credentials is not None:
        set_auth_cookies(
            response,
            access_token=result.credentials.access_token,
            refresh_token=result.credentials.refresh_token,
        )


@router.post(
    "/register",
    response_model=AuthUserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Create an account and sign the caller in."""
    if not data.email or not data.password or not data.name:
        raise ValidationError("Email, password, and name are required")

    result = await auth.register(data.email, data.password, data.name)
    _apply_credentials(response, result)
    return {"message": "User registered successfully", "user": result.identity.to_dict()}


@router.post("/login", response_model=AuthUserResponse)
async def login(
    data: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    if not data.email or not data.password:
        raise ValidationError("Email and password are required")

    result = await auth.login(data.email, data.password)
    _apply_credentials(response, result)
    return {"message": "Login successful", "user": result.identity.to_dict()}


@router.post("/refresh", response_model=AuthUserResponse)
async def refresh(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Mint a new access token from the refreshToken cookie.

    Both cookies are re-sent; the refresh token itself is unchanged.
    """
    result = await auth.refresh(request.cookies.get(REFRESH_TOKEN_COOKIE))
    _apply_credentials(response, result)
    return {"message": "Token refreshed successfully", "user": result.identity.to_dict()}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Delete the refresh session (if any) and always clear both cookies."""
    await auth.logout(request.cookies.get(REFRESH_TOKEN_COOKIE))
    clear_auth_cookies(response)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=AuthUserResponse, response_model_exclude_none=True)
async def me(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    token = getattr(request.state, "access_token", None) or request.cookies.get(ACCESS_TOKEN_COOKIE)
    result = await auth.me(token)
    return {"user": result.identity.to_dict()}

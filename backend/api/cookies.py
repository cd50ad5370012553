"""Auth and session-tracking cookies.

All cookies are httpOnly, ``SameSite=strict``, path ``/`` and ``Secure`` in
production. Both FastAPI and bare Starlette responses are accepted so the
gatekeeper middleware can reuse these helpers.
"""

from typing import Optional

from starlette.responses import Response

from config import get_settings

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"
CURRENT_SESSION_COOKIE = "currentSessionId"

COOKIE_PATH = "/"
COOKIE_SAMESITE = "strict"


def _secure() -> bool:
    return get_settings().secure_cookies


def _seven_days() -> int:
    return get_settings().REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    # accessToken stays a browser-session cookie; the JWT carries its own exp.
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        secure=_secure(),
        samesite=COOKIE_SAMESITE,
        path=COOKIE_PATH,
    )
    response.set_cookie(
        key=REFRESH_TOKEN_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=_secure(),
        samesite=COOKIE_SAMESITE,
        max_age=_seven_days(),
        path=COOKIE_PATH,
    )


def clear_auth_cookies(response: Response) -> None:
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=key,
            path=COOKIE_PATH,
            secure=_secure(),
            httponly=True,
            samesite=COOKIE_SAMESITE,
        )


def set_current_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=CURRENT_SESSION_COOKIE,
        value=session_id,
        httponly=True,
        secure=_secure(),
        samesite=COOKIE_SAMESITE,
        max_age=_seven_days(),
        path=COOKIE_PATH,
    )


def clear_current_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=CURRENT_SESSION_COOKIE,
        path=COOKIE_PATH,
        secure=_secure(),
        httponly=True,
        samesite=COOKIE_SAMESITE,
    )


def read_cookie(cookies: dict, key: str) -> Optional[str]:
    value = cookies.get(key)
    return value or None

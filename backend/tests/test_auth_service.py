"""
Tests for the authentication facade.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from api.dependencies import build_auth_service
from models.auth_session import AuthSession
from services.auth import AuthService, UserIdentity
from services.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def auth(db_session) -> AuthService:
    return build_auth_service(db_session)


@pytest.mark.asyncio
class TestRegister:
    async def test_register_issues_credentials(self, auth: AuthService):
        result = await auth.register("new@example.com", "long-enough-pw", "Newbie")

        assert result.identity.email == "new@example.com"
        assert result.identity.is_pro is False
        assert result.credentials is not None
        assert auth.codec.verify_access(result.credentials.access_token).ok
        assert await auth.sessions.validate_session(result.credentials.refresh_token) == result.identity.id

    async def test_password_is_hashed(self, auth: AuthService):
        result = await auth.register("new@example.com", "long-enough-pw", "Newbie")
        user = await auth.store.find_user_by_id(result.identity.id)

        assert user.password_hash != "long-enough-pw"
        assert user.password_hash.startswith("$2b$")

    async def test_duplicate_email(self, auth: AuthService, sample_user):
        with pytest.raises(ConflictError) as exc:
            await auth.register(sample_user.email, "whatever-pw", "Dup")
        assert exc.value.message == "User with this email already exists"

    async def test_missing_fields(self, auth: AuthService):
        with pytest.raises(ValidationError):
            await auth.register("", "pw", "Name")


@pytest.mark.asyncio
class TestLogin:
    async def test_login_success(self, auth: AuthService, sample_user):
        result = await auth.login(sample_user.email, "correct-horse-battery")
        assert result.identity == UserIdentity.from_user(sample_user)

    async def test_wrong_password_and_unknown_email_look_alike(self, auth: AuthService, sample_user):
        with pytest.raises(AuthenticationError) as wrong:
            await auth.login(sample_user.email, "nope")
        with pytest.raises(AuthenticationError) as unknown:
            await auth.login("ghost@example.com", "nope")

        assert wrong.value.message == unknown.value.message == "Invalid email or password"

    async def test_unknown_email_still_runs_a_hash_check(self, auth: AuthService):
        auth.hasher.verify = AsyncMock(return_value=False)
        with pytest.raises(AuthenticationError):
            await auth.login("ghost@example.com", "nope")
        auth.hasher.verify.assert_awaited_once()

    async def test_email_is_case_sensitive(self, auth: AuthService, sample_user):
        with pytest.raises(AuthenticationError):
            await auth.login(sample_user.email.upper(), "correct-horse-battery")


@pytest.mark.asyncio
class TestRefreshAndLogout:
    async def test_refresh_keeps_refresh_token(self, auth: AuthService, sample_user):
        login = await auth.login(sample_user.email, "correct-horse-battery")
        result = await auth.refresh(login.credentials.refresh_token)

        assert result.credentials.refresh_token == login.credentials.refresh_token
        assert auth.codec.verify_access(result.credentials.access_token).ok
        assert result.identity.id == sample_user.id

    async def test_refresh_requires_token(self, auth: AuthService):
        with pytest.raises(AuthenticationError) as exc:
            await auth.refresh(None)
        assert exc.value.message == "Refresh token is required"

    async def test_refresh_after_logout(self, auth: AuthService, sample_user):
        login = await auth.login(sample_user.email, "correct-horse-battery")
        await auth.logout(login.credentials.refresh_token)

        with pytest.raises(AuthenticationError) as exc:
            await auth.refresh(login.credentials.refresh_token)
        assert exc.value.message == "Invalid or expired refresh token"

    async def test_refresh_for_deleted_user(self, auth: AuthService, db_session, sample_user):
        login = await auth.login(sample_user.email, "correct-horse-battery")

        await db_session.delete(sample_user)
        await db_session.commit()

        # Session rows are deleted with their user, so the token is simply unknown
        assert await db_session.scalar(select(func.count(AuthSession.id))) == 0
        with pytest.raises(AuthenticationError) as exc:
            await auth.refresh(login.credentials.refresh_token)
        assert exc.value.message == "Invalid or expired refresh token"

    async def test_refresh_when_user_vanishes_after_session_check(
        self, auth: AuthService, sample_user
    ):
        # 404 is only reachable if the user row disappears between the
        # session lookup and the user lookup of the same request
        login = await auth.login(sample_user.email, "correct-horse-battery")
        auth.store.find_user_by_id = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await auth.refresh(login.credentials.refresh_token)

    async def test_sequential_refreshes_with_one_token(self, auth: AuthService, sample_user):
        login = await auth.login(sample_user.email, "correct-horse-battery")

        first = await auth.refresh(login.credentials.refresh_token)
        second = await auth.refresh(login.credentials.refresh_token)

        for result in (first, second):
            verified = auth.codec.verify_access(result.credentials.access_token)
            assert verified.ok
            assert verified.claims.id == sample_user.id

    async def test_logout_without_token(self, auth: AuthService):
        await auth.logout(None)


@pytest.mark.asyncio
class TestMe:
    async def test_me_reads_current_user(self, auth: AuthService, sample_user):
        login = await auth.login(sample_user.email, "correct-horse-battery")
        result = await auth.me(login.credentials.access_token)

        assert result.identity.to_dict() == {
            "id": sample_user.id,
            "email": sample_user.email,
            "name": "Ann",
            "isPro": False,
        }

    async def test_me_without_token(self, auth: AuthService):
        with pytest.raises(AuthenticationError) as exc:
            await auth.me(None)
        assert exc.value.message == "Not authenticated"

    async def test_me_with_bad_token(self, auth: AuthService):
        with pytest.raises(AuthenticationError) as exc:
            await auth.me("garbage")
        assert exc.value.message == "Invalid token"


@pytest.mark.asyncio
async def test_identity_from_access(auth: AuthService):
    identity = UserIdentity(id="u1", email="a@b.c", name="A", is_pro=True)
    token = auth.codec.sign_access(identity.to_claims())

    assert auth.identity_from_access(token) == identity
    assert auth.identity_from_access(None) is None

"""
Tests for refresh sessions.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from models.auth_session import AuthSession
from services.credential_store import CredentialStore
from services.sessions import SessionManager
from services.tokens import TokenCodec


class MovableClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def make_manager(db_session, clock=None, verify_signature=True):
    codec = TokenCodec(
        access_secret="access-secret-for-tests",
        refresh_secret="refresh-secret-for-tests",
        algorithm="HS256",
        **({"clock": clock} if clock else {}),
    )
    return SessionManager(CredentialStore(db_session), codec, verify_signature=verify_signature)


@pytest.mark.asyncio
class TestSessionManager:
    async def test_create_and_validate(self, db_session, sample_user):
        manager = make_manager(db_session)
        token = await manager.create_session(sample_user.id)

        assert await manager.validate_session(token) == sample_user.id

    async def test_unknown_token(self, db_session, sample_user):
        manager = make_manager(db_session)
        orphan = manager.codec.sign_refresh(sample_user.id)

        # Correctly signed but never stored
        assert await manager.validate_session(orphan) is None
        assert await manager.validate_session(None) is None

    async def test_delete_revokes(self, db_session, sample_user):
        manager = make_manager(db_session)
        token = await manager.create_session(sample_user.id)

        await manager.delete_session(token)
        assert await manager.validate_session(token) is None

    async def test_delete_missing_is_noop(self, db_session, sample_user):
        manager = make_manager(db_session)
        await manager.delete_session("never-issued")
        await manager.delete_session(None)

    async def test_expired_row(self, db_session, sample_user):
        clock = MovableClock()
        manager = make_manager(db_session, clock=clock)
        token = await manager.create_session(sample_user.id)

        clock.now = clock.now + timedelta(days=7)
        assert await manager.validate_session(token) is None

    async def test_each_login_gets_its_own_session(self, db_session, sample_user):
        manager = make_manager(db_session)
        first = await manager.create_session(sample_user.id)
        second = await manager.create_session(sample_user.id)

        assert first != second
        await manager.delete_session(first)
        assert await manager.validate_session(second) == sample_user.id

    async def test_signature_check_catches_foreign_token(self, db_session, sample_user):
        store = CredentialStore(db_session)
        manager = make_manager(db_session)
        # A row whose token was not signed with our refresh secret
        await store.create_session(
            user_id=sample_user.id,
            token="forged-token",
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )

        assert await manager.validate_session("forged-token") is None
        lenient = make_manager(db_session, verify_signature=False)
        assert await lenient.validate_session("forged-token") == sample_user.id

    async def test_prune_expired(self, db_session, sample_user):
        clock = MovableClock()
        manager = make_manager(db_session, clock=clock)
        await manager.create_session(sample_user.id)
        await manager.create_session(sample_user.id)

        assert await manager.prune_expired() == 0

        clock.now = clock.now + timedelta(days=8)
        assert await manager.prune_expired() == 2
        remaining = await db_session.scalar(select(func.count(AuthSession.id)))
        assert remaining == 0

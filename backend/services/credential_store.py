"""Persistence of users and refresh sessions."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.auth_session import AuthSession
from models.common import as_utc
from models.user import User
from services.errors import ConflictError

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Users and session rows over one ``AsyncSession``.

    Writes are flushed, not committed; the caller owns the unit of work and
    calls ``commit()`` / ``rollback()``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password_hash: str,
        name: str,
        is_pro: bool = False,
    ) -> User:
        """
        Insert a user.

        Raises:
            ConflictError: if the email is already registered, including when a
                concurrent registration wins the unique index race.
        """
        user = User(
            email=email,
            password_hash=password_hash,
            name=name,
            is_pro=is_pro,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Registration rejected: duplicate email")
            raise ConflictError("User with this email already exists")
        return user

    async def find_session(self, token: str) -> Optional[AuthSession]:
        result = await self.db.execute(
            select(AuthSession).where(AuthSession.token == token)
        )
        return result.scalar_one_or_none()

    async def create_session(
        self, user_id: str, token: str, expires_at: datetime
    ) -> AuthSession:
        session = AuthSession(user_id=user_id, token=token, expires_at=expires_at)
        self.db.add(session)
        await self.db.flush()
        return session

    async def delete_session(self, token: str) -> bool:
        result = await self.db.execute(
            delete(AuthSession).where(AuthSession.token == token)
        )
        await self.db.flush()
        return result.rowcount > 0

    async def delete_expired_sessions(self, now: datetime) -> int:
        result = await self.db.execute(
            delete(AuthSession).where(AuthSession.expires_at <= as_utc(now))
        )
        await self.db.flush()
        return result.rowcount

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

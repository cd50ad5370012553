"""Server-side refresh sessions and their periodic sweep."""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from services.credential_store import CredentialStore
from services.tokens import Clock, TokenCodec

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Binds refresh tokens to rows in the ``sessions`` table.

    A refresh token is honoured only while its row exists and has not passed
    ``expires_at``, so deleting the row revokes it.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: TokenCodec,
        verify_signature: Optional[bool] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.codec = codec
        if verify_signature is None:
            verify_signature = get_settings().VERIFY_REFRESH_SIGNATURE
        self.verify_signature = verify_signature
        self.clock = clock or codec.clock

    async def create_session(self, user_id: str) -> str:
        """Mint a refresh token for ``user_id`` and persist its session row."""
        token = self.codec.sign_refresh(user_id)
        await self.store.create_session(
            user_id=user_id,
            token=token,
            expires_at=self.codec.refresh_expires_at(),
        )
        return token

    async def validate_session(self, token: Optional[str]) -> Optional[str]:
        """Return the owning user id, or None if the session is not usable."""
        if not token:
            return None

        session = await self.store.find_session(token)
        if session is None:
            return None
        if session.is_expired(self.clock()):
            logger.debug("Refresh session %s has expired", session.id)
            return None

        if self.verify_signature:
            result = self.codec.verify_refresh(token)
            if not result.ok:
                logger.warning(
                    "Refresh session %s failed token verification: %s",
                    session.id,
                    result.error.value,
                )
                return None
            if result.claims.user_id != session.user_id:
                logger.warning("Refresh session %s is bound to a different user", session.id)
                return None

        return session.user_id

    async def delete_session(self, token: Optional[str]) -> None:
        """Remove the session row. A missing row is not an error."""
        if not token:
            return
        removed = await self.store.delete_session(token)
        if not removed:
            logger.debug("Logout for a refresh session that no longer exists")

    async def prune_expired(self) -> int:
        return await self.store.delete_expired_sessions(self.clock())


# Background task for periodic session cleanup
_sweep_task: Optional[asyncio.Task] = None


async def _periodic_session_sweep(
    session_factory: Callable[[], AsyncSession], interval_seconds: int
):
    """Delete expired session rows every ``interval_seconds``."""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            async with session_factory() as db:
                store = CredentialStore(db)
                removed = await SessionManager(store, TokenCodec()).prune_expired()
                await store.commit()
                if removed > 0:
                    logger.info(f"Session sweep removed {removed} expired sessions")
        except asyncio.CancelledError:
            logger.info("Session sweep task cancelled")
            break
        except Exception as e:
            logger.error(f"Error in session sweep task: {e}")
            # Keep sweeping on the next tick


def start_sweep_task(
    session_factory: Callable[[], AsyncSession],
    interval_seconds: Optional[int] = None,
) -> asyncio.Task:
    """Start the periodic session sweep if it is not already running."""
    global _sweep_task
    if interval_seconds is None:
        interval_seconds = get_settings().SESSION_SWEEP_INTERVAL_SECONDS
    if _sweep_task is None or _sweep_task.done():
        _sweep_task = asyncio.create_task(
            _periodic_session_sweep(session_factory, interval_seconds)
        )
        logger.debug("Started periodic session sweep task")
    return _sweep_task


def stop_sweep_task() -> None:
    global _sweep_task
    if _sweep_task and not _sweep_task.done():
        _sweep_task.cancel()
        logger.debug("Stopped periodic session sweep task")
    _sweep_task = None


__all__ = [
    "SessionManager",
    "start_sweep_task",
    "stop_sweep_task",
]

"""Text sessions and their revision history."""

import logging
import math
import re
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.common import as_utc
from models.text_session import TextRevision, TextSession
from services.errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
TITLE_WORDS = 5
UNTITLED = "Untitled Text"
DEFAULT_TEMPERATURE = 0.7

SESSION_NOT_FOUND = "Session not found"
REVISION_NOT_FOUND = "Revision not found"
NO_ACCESS = "You don't have access to this session"


def generate_title(text: str) -> str:
    """First five words of ``text``, capped at 50 characters."""
    title = " ".join(re.split(r"\s+", text.strip())[:TITLE_WORDS])
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3] + "..."
    return title or UNTITLED


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class HistoryService:
    """
    Owner-scoped access to text sessions.

    Every lookup by id distinguishes "does not exist" (NotFoundError) from
    "exists but belongs to someone else" (ForbiddenError).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_session(self, session_id: str, with_revisions: bool = True) -> Optional[TextSession]:
        query = (
            select(TextSession)
            .where(TextSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        if with_revisions:
            query = query.options(selectinload(TextSession.revisions))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_owned_session(
        self, session_id: str, user_id: str, with_revisions: bool = True
    ) -> TextSession:
        session = await self._load_session(session_id, with_revisions)
        if session is None:
            raise NotFoundError(SESSION_NOT_FOUND)
        if session.user_id != user_id:
            logger.warning(f"User {user_id} denied access to text session {session_id}")
            raise ForbiddenError(NO_ACCESS)
        return session

    async def owned_session_id(self, session_id: Optional[str], user_id: str) -> Optional[str]:
        """Return ``session_id`` if it names one of the user's sessions, else None."""
        if not session_id:
            return None
        result = await self.db.execute(
            select(TextSession.id).where(
                TextSession.id == session_id, TextSession.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def create_session(
        self,
        user_id: str,
        original_text: str,
        prompt: str,
        language: str,
        final_text: Optional[str] = None,
        temperature: Optional[float] = None,
        title: Optional[str] = None,
    ) -> TextSession:
        session = TextSession(
            user_id=user_id,
            title=title or generate_title(original_text),
            original_text=original_text,
            final_text=final_text or original_text,
            prompt=prompt,
            language=language,
            temperature=temperature or DEFAULT_TEMPERATURE,
            is_active=True,
            revisions=[],
        )
        self.db.add(session)
        await self.db.flush()
        logger.info(f"Text session {session.id} created for user {user_id}")
        return session

    async def list_sessions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        language: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Tuple[List[TextSession], int]:
        conditions = [TextSession.user_id == user_id]

        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    TextSession.title.ilike(pattern),
                    TextSession.original_text.ilike(pattern),
                    TextSession.final_text.ilike(pattern),
                    TextSession.prompt.ilike(pattern),
                )
            )
        if language:
            conditions.append(TextSession.language == language)
        if date_from:
            conditions.append(TextSession.created_at >= as_utc(date_from))
        if date_to:
            conditions.append(TextSession.created_at <= as_utc(date_to))

        total = await self.db.scalar(
            select(func.count()).select_from(TextSession).where(*conditions)
        )

        result = await self.db.execute(
            select(TextSession)
            .where(*conditions)
            .options(selectinload(TextSession.revisions))
            .order_by(TextSession.created_at.desc(), TextSession.id)
            .execution_options(populate_existing=True)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def update_title(self, session_id: str, user_id: str, title: str) -> TextSession:
        session = await self.get_owned_session(session_id, user_id)
        session.title = title
        await self.db.flush()
        return session

    async def delete_session(self, session_id: str, user_id: str) -> None:
        session = await self.get_owned_session(session_id, user_id)
        await self.db.delete(session)
        await self.db.flush()
        logger.info(f"Text session {session_id} deleted")

    async def deactivate_all(self, user_id: str) -> int:
        result = await self.db.execute(
            update(TextSession)
            .where(TextSession.user_id == user_id, TextSession.is_active.is_(True))
            .values(is_active=False)
        )
        await self.db.flush()
        return result.rowcount

    async def add_revision(
        self,
        session_id: str,
        user_id: str,
        selected_text: str,
        transformed_text: str,
        transform_prompt: str,
        start_position: int,
        end_position: int,
        preset: Optional[str] = None,
    ) -> TextRevision:
        """Append the next revision and make its output the session's final text."""
        session = await self.get_owned_session(session_id, user_id)

        latest = await self.db.scalar(
            select(func.max(TextRevision.revision_number)).where(
                TextRevision.session_id == session_id
            )
        )
        revision = TextRevision(
            session_id=session_id,
            revision_number=(latest or 0) + 1,
            selected_text=selected_text,
            transformed_text=transformed_text,
            transform_prompt=transform_prompt,
            start_position=start_position,
            end_position=end_position,
            preset=preset,
        )
        session.revisions.append(revision)
        session.final_text = transformed_text
        await self.db.flush()
        return revision

    async def list_revisions(self, session_id: str, user_id: str) -> List[TextRevision]:
        await self.get_owned_session(session_id, user_id, with_revisions=False)
        result = await self.db.execute(
            select(TextRevision)
            .where(TextRevision.session_id == session_id)
            .order_by(TextRevision.revision_number.asc())
        )
        return list(result.scalars().all())

    async def get_revision(self, session_id: str, revision_id: str, user_id: str) -> TextRevision:
        await self.get_owned_session(session_id, user_id, with_revisions=False)
        revision = await self.db.get(TextRevision, revision_id)
        if revision is None or revision.session_id != session_id:
            raise NotFoundError(REVISION_NOT_FOUND)
        return revision

    async def update_revision(
        self,
        session_id: str,
        revision_id: str,
        user_id: str,
        transform_prompt: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> TextRevision:
        revision = await self.get_revision(session_id, revision_id, user_id)
        if transform_prompt:
            revision.transform_prompt = transform_prompt
        if preset:
            revision.preset = preset
        await self.db.flush()
        return revision

    async def delete_revision(self, session_id: str, revision_id: str, user_id: str) -> None:
        """Delete a revision and renumber the rest 1..n in creation order."""
        revision = await self.get_revision(session_id, revision_id, user_id)
        session = await self.get_owned_session(session_id, user_id)
        # delete-orphan removes the row
        session.revisions.remove(revision)
        await self.db.flush()

        remaining = sorted(
            session.revisions,
            key=lambda r: (as_utc(r.created_at), r.revision_number),
        )
        for number, item in enumerate(remaining, start=1):
            item.revision_number = number
        await self.db.flush()

"""Daily generation quota for non-pro users (rolling 24 hours)."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from models.common import as_utc, utcnow
from models.generation_usage import GenerationUsage
from models.user import User
from services.errors import RateLimitError

logger = logging.getLogger(__name__)

QUOTA_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class QuotaStatus:
    is_pro: bool
    limit: Optional[int]
    used: int
    remaining: Optional[int]
    next_reset_at: Optional[datetime]

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0

    def to_dict(self) -> dict:
        return {
            "isPro": self.is_pro,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "nextResetAt": self.next_reset_at.isoformat() if self.next_reset_at else None,
        }


class UsageService:
    def __init__(self, db: AsyncSession, daily_limit: Optional[int] = None, clock=utcnow):
        self.db = db
        self.daily_limit = (
            daily_limit if daily_limit is not None else get_settings().DAILY_GENERATION_LIMIT
        )
        self.clock = clock

    async def stored_tier(self, user_id: str, fallback: bool) -> bool:
        """Pro flag from the user row; access-token claims lag a tier change."""
        result = await self.db.execute(select(User.is_pro).where(User.id == user_id))
        is_pro = result.scalar_one_or_none()
        return fallback if is_pro is None else bool(is_pro)

    async def quota(self, user_id: str, is_pro: bool) -> QuotaStatus:
        if is_pro:
            return QuotaStatus(is_pro=True, limit=None, used=0, remaining=None, next_reset_at=None)

        since = self.clock() - QUOTA_WINDOW
        result = await self.db.execute(
            select(func.count(GenerationUsage.id), func.min(GenerationUsage.created_at)).where(
                GenerationUsage.user_id == user_id,
                GenerationUsage.created_at >= since,
            )
        )
        used, earliest = result.one()
        next_reset_at = as_utc(earliest) + QUOTA_WINDOW if earliest else None

        return QuotaStatus(
            is_pro=False,
            limit=self.daily_limit,
            used=used,
            remaining=max(0, self.daily_limit - used),
            next_reset_at=next_reset_at,
        )

    async def ensure_available(self, user_id: str, is_pro: bool) -> QuotaStatus:
        """
        Raises:
            RateLimitError: when the non-pro daily quota is used up.
        """
        status = await self.quota(user_id, is_pro)
        if status.exhausted:
            logger.info(f"Daily generation quota exhausted for user {user_id}")
            retry_after = 60
            if status.next_reset_at:
                retry_after = max(1, int((status.next_reset_at - self.clock()).total_seconds()))
            raise RateLimitError(
                "Daily generation limit reached",
                retry_after=retry_after,
                details=status.to_dict(),
            )
        return status

    async def record(self, user_id: str, text_session_id: Optional[str] = None) -> GenerationUsage:
        usage = GenerationUsage(user_id=user_id, text_session_id=text_session_id)
        self.db.add(usage)
        await self.db.flush()
        return usage

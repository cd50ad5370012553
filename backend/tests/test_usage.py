"""
Tests for the daily generation quota.
"""

from datetime import datetime, timedelta, timezone

import pytest

from models.generation_usage import GenerationUsage
from services.errors import RateLimitError
from services.usage import UsageService


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.mark.asyncio
class TestUsageService:
    async def test_fresh_user_has_full_quota(self, db_session, sample_user):
        status = await UsageService(db_session, daily_limit=3).quota(sample_user.id, False)

        assert status.used == 0
        assert status.remaining == 3
        assert status.next_reset_at is None
        assert not status.exhausted

    async def test_pro_users_are_unlimited(self, db_session, pro_user):
        usage = UsageService(db_session, daily_limit=1)
        await usage.record(pro_user.id)
        await usage.record(pro_user.id)

        status = await usage.ensure_available(pro_user.id, True)
        assert status.to_dict() == {
            "isPro": True,
            "limit": None,
            "used": 0,
            "remaining": None,
            "nextResetAt": None,
        }

    async def test_limit_reached(self, db_session, sample_user):
        usage = UsageService(db_session, daily_limit=2)
        await usage.record(sample_user.id)
        await usage.record(sample_user.id)

        with pytest.raises(RateLimitError) as exc:
            await usage.ensure_available(sample_user.id, False)

        assert exc.value.message == "Daily generation limit reached"
        assert exc.value.details["used"] == 2
        assert 0 < exc.value.retry_after <= 24 * 3600

    async def test_rolling_window(self, db_session, sample_user):
        now = datetime.now(timezone.utc)
        db_session.add(GenerationUsage(user_id=sample_user.id, created_at=now - timedelta(hours=25)))
        db_session.add(GenerationUsage(user_id=sample_user.id, created_at=now - timedelta(hours=2)))
        await db_session.flush()

        status = await UsageService(db_session, daily_limit=5, clock=Clock(now)).quota(
            sample_user.id, False
        )

        assert status.used == 1
        assert status.remaining == 4
        expected_reset = now - timedelta(hours=2) + timedelta(hours=24)
        assert abs((status.next_reset_at - expected_reset).total_seconds()) < 1

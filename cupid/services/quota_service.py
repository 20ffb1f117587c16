"""
Cupid Discovery — Daily Quota Tracker

The quota is a *derived* value: the number of like / super_like swipes the
user has recorded since midnight UTC.  There is no stored counter and no
reset job; the day-start filter resets it implicitly.

  * Free tier: ``FREE_DAILY_LIKE_LIMIT`` positive actions per UTC day.
    Passes never count and are never blocked.
  * Paid tiers: unlimited.  Gating skips the count query entirely.
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.config import get_settings
from cupid.database import persistence_guard
from cupid.errors import RateLimited
from cupid.models.profile import Profile
from cupid.models.swipe import POSITIVE_ACTIONS, Swipe
from cupid.schemas.swipe import SwipeStats
from cupid.utils.time import start_of_utc_day

logger = structlog.get_logger("cupid.quota_service")


class QuotaService:
    """Per-tier daily swipe quota over the swipe ledger."""

    def __init__(self) -> None:
        settings = get_settings()
        self.free_daily_limit: int = settings.FREE_DAILY_LIKE_LIMIT

    def limit_for(self, is_premium: bool) -> int | None:
        """Daily positive-action limit for a tier; ``None`` means unlimited."""
        return None if is_premium else self.free_daily_limit

    async def count_today(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        now: datetime | None = None,
    ) -> int:
        """Count the user's like / super_like swipes since midnight UTC."""
        day_start = start_of_utc_day(now)
        stmt = (
            select(func.count())
            .select_from(Swipe)
            .where(
                Swipe.swiper_id == user_id,
                Swipe.action.in_(POSITIVE_ACTIONS),
                Swipe.created_at >= day_start,
            )
        )
        async with persistence_guard("count_today"):
            result = await db_session.execute(stmt)
            return int(result.scalar_one())

    async def check_and_count(
        self,
        profile: Profile,
        db_session: AsyncSession,
    ) -> bool:
        """Return True when ``profile`` may record another positive swipe."""
        limit = self.limit_for(profile.is_premium)
        if limit is None:
            return True

        count = await self.count_today(profile.user_id, db_session)
        allowed = count < limit
        logger.debug(
            "quota_checked",
            user_id=str(profile.user_id),
            count=count,
            limit=limit,
            allowed=allowed,
        )
        return allowed

    async def enforce(self, profile: Profile, db_session: AsyncSession) -> None:
        """Raise ``RateLimited`` when the free-tier quota is exhausted."""
        if not await self.check_and_count(profile, db_session):
            logger.info(
                "quota_exhausted",
                user_id=str(profile.user_id),
                limit=self.free_daily_limit,
            )
            raise RateLimited(
                "Daily like limit reached. Come back tomorrow or upgrade "
                "for unlimited likes.",
                limit=self.free_daily_limit,
            )

    async def stats(self, profile: Profile, db_session: AsyncSession) -> SwipeStats:
        """Today's positive-action count and the tier limit (``None`` = unlimited)."""
        count = await self.count_today(profile.user_id, db_session)
        return SwipeStats(count=count, limit=self.limit_for(profile.is_premium))

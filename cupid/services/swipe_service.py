"""
Cupid Discovery — Swipe / Match Coordinator

``record_swipe`` is the single write path for swipes:

    validate → quota gate (positive actions, free tier) → pair lock
    → append swipe → reciprocity check → atomic match upsert → COMMIT → cache invalidation

The swipe and its match upsert share one transaction: a failure or
cancellation before the commit leaves neither behind.  Cache invalidation
runs only after a successful commit and is fail-open.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from cupid.database import persistence_guard
from cupid.errors import Conflict, Forbidden, InvalidInput
from cupid.models.profile import Profile
from cupid.models.swipe import POSITIVE_ACTIONS, Swipe, SwipeAction
from cupid.schemas.swipe import LikeReceived, SwipeResult, SwipeStats
from cupid.services.cache_service import DiscoveryCache
from cupid.services.match_service import MatchService
from cupid.services.profile_service import ProfileService
from cupid.services.quota_service import QuotaService
from cupid.utils.time import as_utc

logger = structlog.get_logger("cupid.swipe_service")

LIKES_RECEIVED_LIMIT = 100


class SwipeService:
    """Records swipes, detects mutual likes, and exposes swipe-side reads."""

    def __init__(
        self,
        cache: DiscoveryCache | None = None,
        profile_service: ProfileService | None = None,
        quota_service: QuotaService | None = None,
        match_service: MatchService | None = None,
    ) -> None:
        self.cache = cache if cache is not None else DiscoveryCache()
        self.profile_service = profile_service or ProfileService(self.cache)
        self.quota_service = quota_service or QuotaService()
        self.match_service = match_service or MatchService(self.cache)

    async def record_swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: SwipeAction | str,
        db_session: AsyncSession,
    ) -> SwipeResult:
        """Record ``actor_id``'s swipe on ``target_id``.

        Parameters
        ----------
        actor_id:
            The authenticated user swiping.
        target_id:
            The profile being swiped on.
        action:
            ``like``, ``pass`` or ``super_like``.
        db_session:
            Active SQLAlchemy async session.  Committed on success.

        Returns
        -------
        SwipeResult
            ``matched`` plus the ``match_id`` when this swipe completed a
            mutual like.

        Raises
        ------
        InvalidInput
            Self-swipe or unknown action.
        NotFound
            Actor or target has no profile.
        RateLimited
            Free-tier daily like quota exhausted (nothing is written).
        Conflict
            The actor already swiped on this target.
        """
        log = logger.bind(actor_id=str(actor_id), target_id=str(target_id))

        if actor_id == target_id:
            raise InvalidInput("You cannot swipe on yourself.")
        try:
            action = SwipeAction(action)
        except ValueError:
            raise InvalidInput(
                f"Unknown swipe action {action!r}.",
                allowed=[a.value for a in SwipeAction],
            ) from None

        actor = await self.profile_service.get_profile_or_raise(actor_id, db_session)
        await self.profile_service.get_profile_or_raise(target_id, db_session)

        if action.is_positive:
            await self.quota_service.enforce(actor, db_session)
            await self.match_service.lock_pair(actor_id, target_id, db_session)

        match_id: uuid.UUID | None = None

        async with persistence_guard("record_swipe"):
            try:
                db_session.add(Swipe(
                    swiper_id=actor_id,
                    target_id=target_id,
                    action=action.value,
                ))
                await db_session.flush()
            except IntegrityError:
                await db_session.rollback()
                log.info("swipe_duplicate", action=action.value)
                raise Conflict(
                    "You have already swiped on this profile.",
                    target_id=str(target_id),
                ) from None

            try:
                if action.is_positive and await self._has_reciprocal_like(
                    actor_id, target_id, db_session
                ):
                    match_id = await self.match_service.upsert_match(
                        actor_id, target_id, db_session
                    )
                await db_session.commit()
            except BaseException:
                await db_session.rollback()
                raise

        await self.cache.invalidate_feed(actor_id)
        if match_id is not None:
            await self.cache.invalidate_matches(actor_id, target_id)

        log.info(
            "swipe_recorded",
            action=action.value,
            matched=match_id is not None,
            match_id=str(match_id) if match_id else None,
        )
        return SwipeResult(matched=match_id is not None, match_id=match_id)

    async def swipe_stats(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> SwipeStats:
        profile = await self.profile_service.get_profile_or_raise(user_id, db_session)
        return await self.quota_service.stats(profile, db_session)

    async def likes_received(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        limit: int = LIKES_RECEIVED_LIMIT,
    ) -> list[LikeReceived]:
        """Users who liked ``user_id`` and are still waiting on a swipe back.

        Premium only; free-tier callers get ``Forbidden``.
        """
        profile = await self.profile_service.get_profile_or_raise(user_id, db_session)
        if not profile.is_premium:
            raise Forbidden("Seeing who liked you requires a premium subscription.")

        reply = aliased(Swipe)
        answered = (
            select(reply.id)
            .where(
                reply.swiper_id == user_id,
                reply.target_id == Profile.user_id,
            )
            .exists()
        )
        stmt = (
            select(Swipe, Profile)
            .join(Profile, Profile.user_id == Swipe.swiper_id)
            .where(
                Swipe.target_id == user_id,
                Swipe.action.in_(POSITIVE_ACTIONS),
                Profile.is_active.is_(True),
                ~answered,
            )
            .order_by(Swipe.created_at.desc())
            .limit(limit)
        )

        async with persistence_guard("likes_received"):
            result = await db_session.execute(stmt)
            rows = result.all()

        return [
            LikeReceived(
                user_id=liker.user_id,
                display_name=liker.display_name,
                age=liker.age,
                photos=list(liker.photos or []),
                action=SwipeAction(swipe.action),
                liked_at=as_utc(swipe.created_at),
            )
            for swipe, liker in rows
        ]

    @staticmethod
    async def _has_reciprocal_like(
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        stmt = select(Swipe.id).where(
            Swipe.swiper_id == target_id,
            Swipe.target_id == actor_id,
            Swipe.action.in_(POSITIVE_ACTIONS),
        ).limit(1)
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none() is not None

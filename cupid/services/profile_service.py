"""
Cupid Discovery — Profile Store access

Thin read/write access to the ``profiles`` table used by the discovery core:

  * ``get_profile_or_raise`` — centralised existence check (``NotFound``).
  * ``update_profile`` — self-service edits.  Edits that change ranking
    inputs (location, preferences, activity, completeness) invalidate the
    editor's own feed and feed-count cache entries.

``last_active`` and ``is_premium`` are owned by other services and are never
written here.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.database import persistence_guard
from cupid.errors import InvalidInput, NotFound
from cupid.models.profile import Profile
from cupid.services.cache_service import DiscoveryCache

logger = structlog.get_logger("cupid.profile_service")

# Fields whose change can alter who appears in the editor's feed, or in
# what order.
_RANKING_FIELDS: frozenset[str] = frozenset({
    "gender_preference",
    "latitude",
    "longitude",
    "max_distance_km",
    "age_range_min",
    "age_range_max",
    "interests",
    "is_active",
})

_OWNED_ELSEWHERE: frozenset[str] = frozenset({"last_active", "is_premium", "user_id"})
_REQUIRED: frozenset[str] = frozenset({
    "display_name", "gender_preference", "photos", "interests", "is_active",
})


class ProfileService:
    """Profile lookups and self-service updates."""

    def __init__(self, cache: DiscoveryCache | None = None) -> None:
        self.cache = cache if cache is not None else DiscoveryCache()

    async def get_profile(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Profile | None:
        async with persistence_guard("get_profile"):
            stmt = select(Profile).where(Profile.user_id == user_id)
            result = await db_session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_profile_or_raise(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Profile:
        profile = await self.get_profile(user_id, db_session)
        if profile is None:
            logger.info("profile_not_found", user_id=str(user_id))
            raise NotFound("Profile not found.", user_id=str(user_id))
        return profile

    async def update_profile(
        self,
        user_id: uuid.UUID,
        changes: dict[str, Any],
        db_session: AsyncSession,
    ) -> Profile:
        """Apply ``changes`` to the user's profile and commit.

        Parameters
        ----------
        user_id:
            The authenticated user editing their own profile.
        changes:
            Field → value mapping (already validated by ``ProfileUpdate``).
            Only keys present are applied.
        db_session:
            Active SQLAlchemy async session.

        Returns
        -------
        Profile
            The refreshed profile row.
        """
        log = logger.bind(user_id=str(user_id))

        forbidden = _OWNED_ELSEWHERE.intersection(changes)
        if forbidden:
            raise InvalidInput(
                f"Fields not editable here: {', '.join(sorted(forbidden))}."
            )
        cleared = sorted(f for f in _REQUIRED.intersection(changes) if changes[f] is None)
        if cleared:
            raise InvalidInput(f"Fields cannot be null: {', '.join(cleared)}.")

        profile = await self.get_profile_or_raise(user_id, db_session)

        age_min = changes.get("age_range_min", profile.age_range_min)
        age_max = changes.get("age_range_max", profile.age_range_max)
        if age_min is not None and age_max is not None and age_min > age_max:
            raise InvalidInput("age_range_min must not exceed age_range_max.")

        changed = {
            field for field, value in changes.items()
            if getattr(profile, field) != value
        }
        for field in changed:
            setattr(profile, field, changes[field])

        async with persistence_guard("update_profile"):
            await db_session.commit()

        if changed & _RANKING_FIELDS:
            await self.cache.invalidate_feed(user_id)

        log.info("profile_updated", updated_fields=sorted(changed))
        return profile

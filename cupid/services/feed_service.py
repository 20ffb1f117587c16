"""
Cupid Discovery — Ranking Engine (personalised discovery feed)

Builds the ordered candidate list for a requester in two passes:

  Pass 1 (SQL): cheap, index-friendly eligibility —
    * not the requester, profile active
    * candidate gender accepted by the requester
    * mutual age-range fit (defaults 18–99 when unset)
    * never swiped by the requester (any action)
    * premium, or active within ``INACTIVE_AFTER_DAYS``
    * latitude band around the requester when a distance cap applies

  Pass 2 (Python): reciprocal gender preference, haversine distance cap,
  and the multi-factor ranking key:

    1. hours since last activity      ascending
    2. profile completeness           descending
    3. distance                       ascending (unknown last)
    4. shared interest count          descending
    5. random tiebreak                re-rolled per query

Completeness = 10 (non-empty bio) + photos (20 if ≥3 else 5 per photo)
             + 10 (≥3 interests).

Results are read-through cached per user and per ``limit`` (feed, 5 min)
and per user (count, 10 min).  Queries never write.
"""

from __future__ import annotations

import math
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog
from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.config import get_settings
from cupid.database import persistence_guard
from cupid.errors import InvalidInput
from cupid.models.profile import GENDER_ANY, Profile
from cupid.models.swipe import Swipe
from cupid.schemas.feed import CandidateProfile
from cupid.services.cache_service import DiscoveryCache
from cupid.services.profile_service import ProfileService
from cupid.utils.geo import EARTH_RADIUS_KM, haversine_km
from cupid.utils.time import as_utc, utcnow

logger = structlog.get_logger("cupid.feed_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

MIN_FEED_LIMIT = 1
MAX_FEED_LIMIT = 100

# Same sphere as haversine_km, so the SQL band never undercuts the exact cap.
_KM_PER_DEGREE_LATITUDE = math.radians(EARTH_RADIUS_KM)
_BAND_PADDING = 1.01

_BIO_POINTS = 10
_PHOTO_POINTS_EACH = 5
_PHOTO_POINTS_FULL = 20
_INTEREST_POINTS = 10
_FULL_SET = 3  # photos / interests needed for the full bonus


def display_distance(distance_km: float | None) -> int | None:
    """Whole kilometres, halves rounded up (12.5 -> 13)."""
    if distance_km is None:
        return None
    return math.floor(distance_km + 0.5)


def profile_completeness(
    bio: str | None,
    photos: list | None,
    interests: list | None,
) -> int:
    """Completeness score used as the second ranking factor (0–40)."""
    score = 0
    if bio and bio.strip():
        score += _BIO_POINTS

    photo_count = len(photos or [])
    if photo_count >= _FULL_SET:
        score += _PHOTO_POINTS_FULL
    else:
        score += photo_count * _PHOTO_POINTS_EACH

    if len(interests or []) >= _FULL_SET:
        score += _INTEREST_POINTS
    return score


@dataclass
class ScoredCandidate:
    profile: Profile
    hours_inactive: float
    completeness: int
    distance_km: float | None
    shared_interests: list[str] = field(default_factory=list)
    tiebreak: float = 0.0

    def sort_key(self) -> tuple:
        distance = self.distance_km if self.distance_km is not None else math.inf
        return (
            self.hours_inactive,
            -self.completeness,
            distance,
            -len(self.shared_interests),
            self.tiebreak,
        )

    def to_candidate(self) -> CandidateProfile:
        p = self.profile
        return CandidateProfile(
            user_id=p.user_id,
            display_name=p.display_name,
            age=p.age,
            gender=p.gender,
            bio=p.bio,
            photos=list(p.photos or []),
            interests=list(p.interests or []),
            relationship_goal=p.relationship_goal,
            last_active=as_utc(p.last_active),
            is_premium=p.is_premium,
            distance=display_distance(self.distance_km),
            shared_interests=self.shared_interests,
        )


class FeedService:
    """Ranks eligible candidates for a requester, behind a fail-open cache.

    Dependencies are injected at construction so that the service can be
    tested with a ``NullCache`` and a seeded random generator.
    """

    def __init__(
        self,
        cache: DiscoveryCache | None = None,
        profile_service: ProfileService | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.cache = cache if cache is not None else DiscoveryCache()
        self.profile_service = profile_service or ProfileService(self.cache)
        self._rng = rng or random.Random()

        settings = get_settings()
        self.inactive_after = timedelta(days=settings.INACTIVE_AFTER_DAYS)
        self.default_max_distance_km: int = settings.DEFAULT_MAX_DISTANCE_KM
        self.default_age_min: int = settings.DEFAULT_AGE_MIN
        self.default_age_max: int = settings.DEFAULT_AGE_MAX

    # ── Public API ────────────────────────────────────────────────────────

    async def get_feed(
        self,
        user_id: uuid.UUID,
        limit: int,
        db_session: AsyncSession,
    ) -> list[CandidateProfile]:
        """Return up to ``limit`` ranked candidates for ``user_id``.

        Parameters
        ----------
        user_id:
            The requesting user.
        limit:
            Page size, 1–100.
        db_session:
            Active SQLAlchemy async session (read-only use).

        Returns
        -------
        list[CandidateProfile]
            Candidates in ranking order, each with rounded ``distance`` (or
            ``None``) and ``shared_interests``.

        Raises
        ------
        InvalidInput
            ``limit`` outside 1–100.
        NotFound
            The requester has no profile.
        """
        if not MIN_FEED_LIMIT <= limit <= MAX_FEED_LIMIT:
            raise InvalidInput(
                f"limit must be between {MIN_FEED_LIMIT} and {MAX_FEED_LIMIT}."
            )

        log = logger.bind(user_id=str(user_id), limit=limit)
        cache_key = self.cache.feed_key(user_id, limit)

        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            try:
                feed = [CandidateProfile.model_validate(item) for item in cached]
                log.debug("feed_cache_hit", size=len(feed))
                return feed
            except (TypeError, ValidationError):
                log.warning("feed_cache_entry_invalid")

        requester = await self.profile_service.get_profile_or_raise(user_id, db_session)
        ranked = await self._rank_candidates(requester, db_session)
        feed = [scored.to_candidate() for scored in ranked[:limit]]

        await self.cache.set_json(
            cache_key,
            [candidate.model_dump(mode="json") for candidate in feed],
            self.cache.feed_ttl,
        )
        log.info("feed_built", eligible=len(ranked), returned=len(feed))
        return feed

    async def get_feed_count(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        """Number of candidates currently eligible for ``user_id``.

        Uses exactly the feed's eligibility rules, distance cap included,
        without truncation.
        """
        log = logger.bind(user_id=str(user_id))
        cache_key = self.cache.feed_count_key(user_id)

        cached = await self.cache.get_json(cache_key)
        if isinstance(cached, int):
            log.debug("feed_count_cache_hit", count=cached)
            return cached

        requester = await self.profile_service.get_profile_or_raise(user_id, db_session)
        eligible = await self._eligible_candidates(requester, db_session)
        count = len(eligible)

        await self.cache.set_json(cache_key, count, self.cache.feed_count_ttl)
        log.info("feed_count_built", count=count)
        return count

    # ── Eligibility ──────────────────────────────────────────────────────

    async def _eligible_candidates(
        self,
        requester: Profile,
        db_session: AsyncSession,
        now: datetime | None = None,
    ) -> list[ScoredCandidate]:
        """Apply both eligibility passes and attach the ranking factors."""
        now = now or utcnow()
        max_distance = requester.max_distance_km or self.default_max_distance_km

        async with persistence_guard("feed_candidates"):
            result = await db_session.execute(
                self._candidate_query(requester, now, max_distance)
            )
            rows = result.scalars().all()

        requester_interests = set(requester.interests or [])
        eligible: list[ScoredCandidate] = []

        for candidate in rows:
            if not candidate.accepts_gender(requester.gender):
                continue

            # An unlocated requester has no cap to apply; distance stays unknown.
            distance_km: float | None = None
            if requester.has_location:
                if not candidate.has_location:
                    continue
                distance_km = haversine_km(
                    requester.latitude, requester.longitude,
                    candidate.latitude, candidate.longitude,
                )
                if distance_km > max_distance:
                    continue

            last_active = as_utc(candidate.last_active)
            hours_inactive = (
                max(0.0, (now - last_active).total_seconds() / 3600.0)
                if last_active is not None
                else math.inf
            )

            shared: list[str] = []
            for tag in candidate.interests or []:
                if tag in requester_interests and tag not in shared:
                    shared.append(tag)

            eligible.append(ScoredCandidate(
                profile=candidate,
                hours_inactive=hours_inactive,
                completeness=profile_completeness(
                    candidate.bio, candidate.photos, candidate.interests,
                ),
                distance_km=distance_km,
                shared_interests=shared,
            ))

        return eligible

    def _candidate_query(self, requester: Profile, now: datetime, max_distance: int):
        age_min = (
            requester.age_range_min
            if requester.age_range_min is not None
            else self.default_age_min
        )
        age_max = (
            requester.age_range_max
            if requester.age_range_max is not None
            else self.default_age_max
        )

        already_swiped = (
            select(Swipe.id)
            .where(
                Swipe.swiper_id == requester.user_id,
                Swipe.target_id == Profile.user_id,
            )
            .exists()
        )

        stmt = select(Profile).where(
            Profile.user_id != requester.user_id,
            Profile.is_active.is_(True),
            Profile.age.between(age_min, age_max),
            func.coalesce(Profile.age_range_min, self.default_age_min) <= requester.age,
            func.coalesce(Profile.age_range_max, self.default_age_max) >= requester.age,
            ~already_swiped,
            or_(
                Profile.is_premium.is_(True),
                Profile.last_active >= now - self.inactive_after,
            ),
        )

        preference = list(requester.gender_preference or [])
        if GENDER_ANY not in preference:
            stmt = stmt.where(Profile.gender.in_(preference))

        if requester.has_location:
            # Latitude band only; the exact haversine cap runs in pass 2.
            band = max_distance / _KM_PER_DEGREE_LATITUDE * _BAND_PADDING
            stmt = stmt.where(
                Profile.latitude.between(
                    requester.latitude - band, requester.latitude + band
                ),
                Profile.longitude.is_not(None),
            )

        return stmt

    # ── Ranking ──────────────────────────────────────────────────────────

    async def _rank_candidates(
        self,
        requester: Profile,
        db_session: AsyncSession,
    ) -> list[ScoredCandidate]:
        eligible = await self._eligible_candidates(requester, db_session)
        for scored in eligible:
            scored.tiebreak = self._rng.random()
        eligible.sort(key=ScoredCandidate.sort_key)
        return eligible

"""
Cupid Discovery — Match Registry

Owns every write to the ``matches`` table:

  * ``upsert_match``  — atomic insert-or-reactivate on the canonical pair
                        (``INSERT … ON CONFLICT DO UPDATE … RETURNING id``).
                        Concurrent reciprocal likes converge on one row.
  * ``unmatch``       — participant-only soft delete (``is_active = false``).

and the participant-facing reads ``list_matches`` (cached per user) and
``get_match``.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import ValidationError

from cupid.database import persistence_guard
from cupid.errors import Forbidden, NotFound
from cupid.models.match import Match
from cupid.models.profile import Profile
from cupid.schemas.match import MatchParticipant, MatchWithProfile, UnmatchResponse
from cupid.services.cache_service import DiscoveryCache
from cupid.utils.time import as_utc, utcnow

logger = structlog.get_logger("cupid.match_service")


class MatchService:
    """Match registry reads and writes."""

    def __init__(self, cache: DiscoveryCache | None = None) -> None:
        self.cache = cache if cache is not None else DiscoveryCache()

    # ── Writes ────────────────────────────────────────────────────────────

    @staticmethod
    async def lock_pair(
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> None:
        """Serialise positive swipes between one pair until the caller commits.

        Two reciprocal likes committed concurrently under READ COMMITTED
        would each miss the other's uncommitted swipe.  A transaction-scoped
        advisory lock on the canonical pair makes the second wait and then
        see the first.  Other pairs are unaffected.  SQLite serialises writers
        already and has no advisory locks.
        """
        if db_session.get_bind().dialect.name != "postgresql":
            return
        low, high = Match.canonical_pair(user_a, user_b)
        key = func.hashtextextended(f"{low}:{high}", 0)
        async with persistence_guard("lock_pair"):
            await db_session.execute(select(func.pg_advisory_xact_lock(key)))

    async def upsert_match(
        self,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> uuid.UUID:
        """Create the match for a pair, or reactivate it if it already exists.

        The statement runs inside the caller's transaction and does not
        commit.  ``matched_at`` keeps its original value on reactivation.

        Returns
        -------
        uuid.UUID
            The id of the single row for the canonical pair.
        """
        low, high = Match.canonical_pair(user_a, user_b)
        now = utcnow()

        dialect = db_session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert

        stmt = (
            insert(Match)
            .values(
                id=uuid.uuid4(),
                user_low_id=low,
                user_high_id=high,
                matched_at=now,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["user_low_id", "user_high_id"],
                set_={"is_active": True, "updated_at": now},
            )
            .returning(Match.id)
        )

        async with persistence_guard("upsert_match"):
            result = await db_session.execute(stmt)
            match_id = result.scalar_one()

        logger.info(
            "match_upserted",
            match_id=str(match_id),
            user_low_id=str(low),
            user_high_id=str(high),
        )
        return match_id

    async def unmatch(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> UnmatchResponse:
        """Deactivate a match on behalf of one of its participants.

        Raises
        ------
        NotFound
            No match with ``match_id``.
        Forbidden
            ``user_id`` is not a participant.
        """
        log = logger.bind(match_id=str(match_id), user_id=str(user_id))

        match = await self._get_participant_match(match_id, user_id, db_session)
        match.is_active = False

        async with persistence_guard("unmatch"):
            await db_session.commit()

        await self.cache.invalidate_matches(match.user_low_id, match.user_high_id)
        await self.cache.invalidate_messages(match.id)

        log.info("match_deactivated")
        return UnmatchResponse(status="unmatched", match_id=match.id)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_matches(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[MatchWithProfile]:
        """Active matches for ``user_id``, most recent conversation first."""
        log = logger.bind(user_id=str(user_id))
        cache_key = self.cache.matches_key(user_id)

        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            try:
                matches = [MatchWithProfile.model_validate(item) for item in cached]
                log.debug("match_list_cache_hit", size=len(matches))
                return matches
            except (TypeError, ValidationError):
                log.warning("match_list_cache_entry_invalid")

        stmt = (
            select(Match)
            .where(
                Match.is_active.is_(True),
                or_(Match.user_low_id == user_id, Match.user_high_id == user_id),
            )
            .order_by(
                Match.last_message_at.desc().nulls_last(),
                Match.matched_at.desc(),
            )
        )
        # Rows may have been reactivated by a core upsert in this session.
        stmt = stmt.execution_options(populate_existing=True)
        async with persistence_guard("list_matches"):
            result = await db_session.execute(stmt)
            rows = result.scalars().all()

            other_ids = [m.other_participant(user_id) for m in rows]
            profiles = await self._profiles_by_user_id(other_ids, db_session)

        matches = []
        for match in rows:
            other = profiles.get(match.other_participant(user_id))
            if other is None:
                continue
            matches.append(self._to_schema(match, other))

        await self.cache.set_json(
            cache_key,
            [m.model_dump(mode="json") for m in matches],
            self.cache.match_list_ttl,
        )
        log.info("match_list_built", count=len(matches))
        return matches

    async def get_match(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> MatchWithProfile:
        match = await self._get_participant_match(match_id, user_id, db_session)
        other_id = match.other_participant(user_id)

        async with persistence_guard("get_match"):
            profiles = await self._profiles_by_user_id([other_id], db_session)

        other = profiles.get(other_id)
        if other is None:
            raise NotFound("Match not found.", match_id=str(match_id))
        return self._to_schema(match, other)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _get_participant_match(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match:
        async with persistence_guard("get_match"):
            match = await db_session.get(Match, match_id, populate_existing=True)

        if match is None:
            raise NotFound("Match not found.", match_id=str(match_id))
        if not match.involves(user_id):
            logger.warning(
                "match_access_denied", match_id=str(match_id), user_id=str(user_id)
            )
            raise Forbidden("Not a participant in this match.", match_id=str(match_id))
        return match

    @staticmethod
    async def _profiles_by_user_id(
        user_ids: list[uuid.UUID],
        db_session: AsyncSession,
    ) -> dict[uuid.UUID, Profile]:
        if not user_ids:
            return {}
        result = await db_session.execute(
            select(Profile).where(Profile.user_id.in_(user_ids))
        )
        return {p.user_id: p for p in result.scalars().all()}

    @staticmethod
    def _to_schema(match: Match, other: Profile) -> MatchWithProfile:
        return MatchWithProfile(
            match_id=match.id,
            matched_at=as_utc(match.matched_at),
            last_message_at=as_utc(match.last_message_at),
            is_active=match.is_active,
            other_user=MatchParticipant(
                user_id=other.user_id,
                display_name=other.display_name,
                age=other.age,
                photos=list(other.photos or []),
                bio=other.bio,
            ),
        )

"""Tests for the swipe/match coordinator."""
import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cupid.database import Base
from cupid.errors import Conflict, Forbidden, InvalidInput, NotFound, RateLimited
from cupid.models.match import Match
from cupid.models.profile import Profile
from cupid.models.swipe import Swipe
from cupid.services.match_service import MatchService
from cupid.services.quota_service import QuotaService
from cupid.services.swipe_service import SwipeService


@pytest.fixture
def quota_service():
    service = QuotaService()
    service.free_daily_limit = 5
    return service


@pytest.fixture
def swipe_service(cache, quota_service):
    return SwipeService(cache, quota_service=quota_service)


@pytest.fixture
def match_service(cache):
    return MatchService(cache)


async def _count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _pair(make_profile):
    a = await make_profile(display_name="A", gender="male", gender_preference=["female"])
    b = await make_profile(display_name="B", gender="female", gender_preference=["male"])
    return a.user_id, b.user_id


class TestValidation:

    @pytest.mark.asyncio
    async def test_self_swipe_rejected(self, swipe_service, db_session, make_profile):
        me = await make_profile()
        with pytest.raises(InvalidInput):
            await swipe_service.record_swipe(me.user_id, me.user_id, "like", db_session)
        assert await _count(db_session, Swipe) == 0

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, swipe_service, db_session, make_profile):
        a, b = await _pair(make_profile)
        with pytest.raises(InvalidInput):
            await swipe_service.record_swipe(a, b, "superlike", db_session)

    @pytest.mark.asyncio
    async def test_missing_target(self, swipe_service, db_session, make_profile):
        me = await make_profile()
        with pytest.raises(NotFound):
            await swipe_service.record_swipe(me.user_id, uuid.uuid4(), "like", db_session)

    @pytest.mark.asyncio
    async def test_missing_actor(self, swipe_service, db_session, make_profile):
        target = await make_profile()
        with pytest.raises(NotFound):
            await swipe_service.record_swipe(uuid.uuid4(), target.user_id, "pass", db_session)


class TestRecordSwipe:

    @pytest.mark.asyncio
    async def test_pass_never_matches(self, swipe_service, db_session, make_profile, make_swipe):
        a, b = await _pair(make_profile)
        await make_swipe(b, a, "like")

        result = await swipe_service.record_swipe(a, b, "pass", db_session)

        assert result.matched is False
        assert result.match_id is None
        assert await _count(db_session, Match) == 0

    @pytest.mark.asyncio
    async def test_one_sided_like(self, swipe_service, db_session, make_profile):
        a, b = await _pair(make_profile)

        result = await swipe_service.record_swipe(a, b, "like", db_session)

        assert result.matched is False
        assert await _count(db_session, Swipe) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("first,second", [
        ("like", "like"),
        ("super_like", "like"),
        ("like", "super_like"),
    ])
    async def test_reciprocal_positive_actions_match(
        self, swipe_service, db_session, make_profile, first, second
    ):
        a, b = await _pair(make_profile)

        await swipe_service.record_swipe(a, b, first, db_session)
        result = await swipe_service.record_swipe(b, a, second, db_session)

        assert result.matched is True
        match = await db_session.get(Match, result.match_id)
        assert (match.user_low_id, match.user_high_id) == Match.canonical_pair(a, b)
        assert str(match.user_low_id) < str(match.user_high_id)
        assert match.is_active is True

    @pytest.mark.asyncio
    async def test_reciprocal_pass_does_not_match(
        self, swipe_service, db_session, make_profile, make_swipe
    ):
        a, b = await _pair(make_profile)
        await make_swipe(b, a, "pass")

        result = await swipe_service.record_swipe(a, b, "like", db_session)

        assert result.matched is False

    @pytest.mark.asyncio
    async def test_duplicate_swipe_conflicts(self, swipe_service, db_session, make_profile):
        a, b = await _pair(make_profile)
        await swipe_service.record_swipe(a, b, "pass", db_session)

        with pytest.raises(Conflict):
            await swipe_service.record_swipe(a, b, "like", db_session)

        rows = (await db_session.execute(select(Swipe.action))).scalars().all()
        assert rows == ["pass"]

    @pytest.mark.asyncio
    async def test_session_usable_after_conflict(self, swipe_service, db_session, make_profile):
        a, b = await _pair(make_profile)
        c = (await make_profile(display_name="C", gender="female",
                                gender_preference=["male"])).user_id
        await swipe_service.record_swipe(a, b, "pass", db_session)
        with pytest.raises(Conflict):
            await swipe_service.record_swipe(a, b, "pass", db_session)

        result = await swipe_service.record_swipe(a, c, "like", db_session)

        assert result.matched is False
        assert await _count(db_session, Swipe) == 2


class TestCacheInvalidation:

    @pytest.mark.asyncio
    async def test_swipe_invalidates_actor_feed(
        self, swipe_service, cache, db_session, make_profile
    ):
        a, b = await _pair(make_profile)
        cache.invalidate_feed = AsyncMock(return_value=0)
        cache.invalidate_matches = AsyncMock(return_value=0)

        await swipe_service.record_swipe(a, b, "pass", db_session)

        cache.invalidate_feed.assert_awaited_once_with(a)
        cache.invalidate_matches.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_match_invalidates_both_match_lists(
        self, swipe_service, cache, db_session, make_profile, make_swipe
    ):
        a, b = await _pair(make_profile)
        await make_swipe(b, a, "like")
        cache.invalidate_matches = AsyncMock(return_value=0)

        await swipe_service.record_swipe(a, b, "like", db_session)

        cache.invalidate_matches.assert_awaited_once_with(a, b)

    @pytest.mark.asyncio
    async def test_cached_feed_and_count_dropped(
        self, swipe_service, cache, memory_backend, db_session, make_profile
    ):
        a, b = await _pair(make_profile)
        memory_backend.store[cache.feed_key(a, 20)] = "[]"
        memory_backend.store[cache.feed_count_key(a)] = "3"
        memory_backend.store[cache.feed_key(b, 20)] = "[]"

        await swipe_service.record_swipe(a, b, "like", db_session)

        assert set(memory_backend.store) == {cache.feed_key(b, 20)}

    @pytest.mark.asyncio
    async def test_failed_swipe_leaves_cache_alone(
        self, swipe_service, cache, db_session, make_profile
    ):
        a, b = await _pair(make_profile)
        await swipe_service.record_swipe(a, b, "pass", db_session)
        cache.invalidate_feed = AsyncMock(return_value=0)

        with pytest.raises(Conflict):
            await swipe_service.record_swipe(a, b, "pass", db_session)

        cache.invalidate_feed.assert_not_awaited()


class TestQuotaGate:

    @pytest.mark.asyncio
    async def test_limit_minus_one_then_limited(
        self, swipe_service, db_session, make_profile, make_swipe
    ):
        me = (await make_profile()).user_id
        targets = [(await make_profile(display_name=f"t{i}")).user_id for i in range(6)]
        for target in targets[:4]:
            await make_swipe(me, target, "like")

        await swipe_service.record_swipe(me, targets[4], "like", db_session)
        with pytest.raises(RateLimited) as exc_info:
            await swipe_service.record_swipe(me, targets[5], "super_like", db_session)

        assert exc_info.value.limit == 5
        assert await _count(db_session, Swipe) == 5

    @pytest.mark.asyncio
    async def test_passes_never_blocked(
        self, swipe_service, db_session, make_profile, make_swipe
    ):
        me = (await make_profile()).user_id
        targets = [(await make_profile(display_name=f"t{i}")).user_id for i in range(6)]
        for target in targets[:5]:
            await make_swipe(me, target, "like")

        result = await swipe_service.record_swipe(me, targets[5], "pass", db_session)

        assert result.matched is False

    @pytest.mark.asyncio
    async def test_premium_never_limited(self, swipe_service, db_session, make_profile):
        me = (await make_profile(is_premium=True)).user_id
        targets = [(await make_profile(display_name=f"t{i}")).user_id for i in range(55)]

        for target in targets:
            await swipe_service.record_swipe(me, target, "like", db_session)

        assert await _count(db_session, Swipe) == 55


class TestMatchUpsert:

    @pytest.mark.asyncio
    async def test_both_orders_converge_on_one_row(
        self, match_service, db_session, make_profile
    ):
        a, b = await _pair(make_profile)

        first = await match_service.upsert_match(a, b, db_session)
        second = await match_service.upsert_match(b, a, db_session)
        await db_session.commit()

        assert first == second
        assert await _count(db_session, Match) == 1

    @pytest.mark.asyncio
    async def test_reciprocal_likes_in_either_order_one_match(
        self, swipe_service, match_service, db_session, make_profile, make_swipe
    ):
        """Both likes already in the ledger when each side's upsert runs."""
        a, b = await _pair(make_profile)
        await make_swipe(a, b, "like")
        await make_swipe(b, a, "like")

        ids = {
            await match_service.upsert_match(a, b, db_session),
            await match_service.upsert_match(b, a, db_session),
        }
        await db_session.commit()

        assert len(ids) == 1
        assert await _count(db_session, Match) == 1

    @pytest.mark.asyncio
    async def test_unmatch_then_rematch_reuses_id(
        self, swipe_service, match_service, db_session, make_profile
    ):
        a, b = await _pair(make_profile)
        await swipe_service.record_swipe(a, b, "like", db_session)
        result = await swipe_service.record_swipe(b, a, "like", db_session)
        original = await db_session.get(Match, result.match_id)
        matched_at = original.matched_at

        await match_service.unmatch(result.match_id, a, db_session)
        assert (await db_session.get(Match, result.match_id)).is_active is False

        again = await match_service.upsert_match(b, a, db_session)
        await db_session.commit()

        assert again == result.match_id
        refreshed = await db_session.get(Match, again, populate_existing=True)
        assert refreshed.is_active is True
        assert refreshed.matched_at == matched_at
        assert await _count(db_session, Match) == 1


class TestLedgerConstraints:

    @pytest.mark.asyncio
    async def test_self_swipe_rejected_by_schema(self, db_session, make_profile):
        me = (await make_profile()).user_id
        db_session.add(Swipe(swiper_id=me, target_id=me, action="like"))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_unknown_action_rejected_by_schema(self, db_session, make_profile):
        a, b = await _pair(make_profile)
        db_session.add(Swipe(swiper_id=a, target_id=b, action="maybe"))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """File-backed database so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cupid.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


class TestConcurrentReciprocalLikes:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("a_first", [True, False])
    async def test_one_match_for_simultaneous_likes(
        self, file_engine, cache, quota_service, a_first
    ):
        factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        a, b = uuid.uuid4(), uuid.uuid4()
        async with factory() as session:
            session.add_all([
                Profile(user_id=a, display_name="A", age=28, gender="male",
                        gender_preference=["female"]),
                Profile(user_id=b, display_name="B", age=27, gender="female",
                        gender_preference=["male"]),
            ])
            await session.commit()

        service = SwipeService(cache, quota_service=quota_service)

        async def like(actor, target):
            async with factory() as session:
                return await service.record_swipe(actor, target, "like", session)

        swipes = [(a, b), (b, a)] if a_first else [(b, a), (a, b)]
        results = await asyncio.gather(*(like(actor, target) for actor, target in swipes))

        matched = [r for r in results if r.matched]
        assert len(matched) == 1
        async with factory() as session:
            assert await _count(session, Swipe) == 2
            assert await _count(session, Match) == 1
            row = (await session.execute(select(Match))).scalar_one()
        assert row.id == matched[0].match_id
        assert row.is_active is True


class TestLikesReceived:

    @pytest.mark.asyncio
    async def test_free_users_forbidden(self, swipe_service, db_session, make_profile):
        me = await make_profile()
        with pytest.raises(Forbidden):
            await swipe_service.likes_received(me.user_id, db_session)

    @pytest.mark.asyncio
    async def test_lists_unanswered_positive_likes(
        self, swipe_service, db_session, make_profile, make_swipe
    ):
        me = (await make_profile(is_premium=True)).user_id
        liker = (await make_profile(display_name="liker")).user_id
        super_liker = (await make_profile(display_name="super")).user_id
        passer = (await make_profile(display_name="passer")).user_id
        answered = (await make_profile(display_name="answered")).user_id
        await make_swipe(liker, me, "like")
        await make_swipe(super_liker, me, "super_like")
        await make_swipe(passer, me, "pass")
        await make_swipe(answered, me, "like")
        await make_swipe(me, answered, "pass")

        received = await swipe_service.likes_received(me, db_session)

        assert {r.display_name for r in received} == {"liker", "super"}
        assert {r.action.value for r in received} == {"like", "super_like"}


class TestSwipeStats:

    @pytest.mark.asyncio
    async def test_stats_after_swipes(self, swipe_service, db_session, make_profile):
        a, b = await _pair(make_profile)
        await swipe_service.record_swipe(a, b, "like", db_session)

        stats = await swipe_service.swipe_stats(a, db_session)

        assert stats.count == 1
        assert stats.limit == 5

"""Shared pytest fixtures for Cupid Discovery tests."""
import os

# Settings are read at import time by cupid.database; point them at an
# in-memory database and keep Redis out of the picture.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CACHE_ENABLED", "false")

import fnmatch
import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import cupid.models  # noqa: F401  (registers every table on Base.metadata)
from cupid.database import Base
from cupid.models.profile import Profile
from cupid.models.swipe import Swipe
from cupid.services.cache_service import DiscoveryCache
from cupid.utils.time import utcnow


class MemoryCache:
    """Dict-backed cache backend with glob invalidation, for coherency tests."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ttl_seconds):
        self.store[key] = value
        self.ttls[key] = ttl_seconds

    async def invalidate_pattern(self, pattern):
        doomed = [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]
        for key in doomed:
            del self.store[key]
            self.ttls.pop(key, None)
        return len(doomed)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def memory_backend():
    return MemoryCache()


@pytest.fixture
def cache(memory_backend):
    return DiscoveryCache(memory_backend)


@pytest.fixture
def make_profile(db_session):
    """Factory: insert a committed profile.  Defaults describe an active,
    location-less man looking for women, seen an hour ago."""

    async def _make(**overrides) -> Profile:
        fields = dict(
            user_id=uuid.uuid4(),
            display_name="Test User",
            age=28,
            gender="male",
            gender_preference=["female"],
            bio=None,
            latitude=None,
            longitude=None,
            photos=[],
            interests=[],
            relationship_goal=None,
            max_distance_km=50,
            age_range_min=18,
            age_range_max=99,
            is_active=True,
            last_active=utcnow() - timedelta(hours=1),
            is_premium=False,
        )
        fields.update(overrides)
        profile = Profile(**fields)
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_swipe(db_session):
    async def _make(swiper_id, target_id, action="like", created_at=None) -> Swipe:
        swipe = Swipe(swiper_id=swiper_id, target_id=target_id, action=action)
        if created_at is not None:
            swipe.created_at = created_at
        db_session.add(swipe)
        await db_session.commit()
        return swipe

    return _make


@pytest_asyncio.fixture
async def worked_example(make_profile):
    """Requester R and candidates C (active 1 h ago) and D (identical to C,
    active 10 days ago) around San Francisco."""
    now = utcnow()
    requester = await make_profile(
        display_name="R",
        age=28,
        gender="male",
        gender_preference=["female"],
        max_distance_km=50,
        latitude=37.77,
        longitude=-122.41,
        interests=["hiking", "coffee", "jazz"],
    )
    candidate = dict(
        age=26,
        gender="female",
        gender_preference=["male"],
        latitude=37.80,
        longitude=-122.27,
        bio="Coffee first, then mountains.",
        photos=["https://example.com/1.jpg", "https://example.com/2.jpg",
                "https://example.com/3.jpg"],
        interests=["hiking", "coffee", "film", "travel"],
    )
    c = await make_profile(display_name="C", last_active=now - timedelta(hours=1), **candidate)
    d = await make_profile(display_name="D", last_active=now - timedelta(days=10), **candidate)
    return requester, c, d

"""
Cupid Discovery — Feed API

Ranked discovery feed and eligible-candidate count for the current user.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.api.deps import get_current_user_id, get_feed_service
from cupid.database import get_db
from cupid.schemas.feed import CandidateProfile, FeedCountResponse
from cupid.services.feed_service import FeedService

logger = structlog.get_logger("cupid.api.feed")

router = APIRouter()

DEFAULT_FEED_LIMIT = 20


# ──────────────────────────────────────────────────────────────────────────────
# GET /: Ranked discovery feed
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[CandidateProfile],
    summary="Get the ranked discovery feed",
)
async def get_feed(
    limit: int = Query(DEFAULT_FEED_LIMIT, description="Page size, 1–100"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: FeedService = Depends(get_feed_service),
    db: AsyncSession = Depends(get_db),
) -> list[CandidateProfile]:
    """Return candidates ordered by recency of activity, profile
    completeness, distance and shared interests.

    Profiles the user has already swiped on never appear.  A ``limit``
    outside 1–100 is rejected with 422.
    """
    logger.bind(user_id=str(user_id), limit=limit).debug("get_feed_request")
    return await service.get_feed(user_id, limit, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /count: Eligible candidate count
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/count",
    response_model=FeedCountResponse,
    summary="Count candidates currently eligible for the feed",
)
async def get_feed_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: FeedService = Depends(get_feed_service),
    db: AsyncSession = Depends(get_db),
) -> FeedCountResponse:
    count = await service.get_feed_count(user_id, db)
    return FeedCountResponse(count=count)

"""
Cupid Discovery — Swipes API

Record like / pass / super_like actions, read today's quota usage, and
(premium) list the users waiting on a swipe back.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.api.deps import get_current_user_id, get_swipe_service
from cupid.database import get_db
from cupid.schemas.swipe import LikeReceived, SwipeCreate, SwipeResult, SwipeStats
from cupid.services.swipe_service import SwipeService

logger = structlog.get_logger("cupid.api.swipes")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Record a swipe
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=SwipeResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record a swipe and detect a mutual like",
)
async def record_swipe(
    payload: SwipeCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SwipeService = Depends(get_swipe_service),
    db: AsyncSession = Depends(get_db),
) -> SwipeResult:
    """Record the current user's swipe on ``target_id``.

    Returns ``{"matched": true, "match_id": ...}`` when the target had
    already liked the current user.

    Errors:
      * 409 — already swiped on this profile
      * 429 — free-tier daily like limit reached (body carries ``limit``)
      * 404 — either profile does not exist
    """
    log = logger.bind(user_id=str(user_id), target_id=str(payload.target_id))
    log.debug("record_swipe_request", action=payload.action.value)
    return await service.record_swipe(user_id, payload.target_id, payload.action, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /count: Today's quota usage
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/count",
    response_model=SwipeStats,
    summary="Today's like count and daily limit",
)
async def swipe_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SwipeService = Depends(get_swipe_service),
    db: AsyncSession = Depends(get_db),
) -> SwipeStats:
    """``limit`` is ``null`` for premium users."""
    return await service.swipe_stats(user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /likes-received: Who liked me (premium)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/likes-received",
    response_model=list[LikeReceived],
    summary="List users who liked you (premium)",
)
async def likes_received(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SwipeService = Depends(get_swipe_service),
    db: AsyncSession = Depends(get_db),
) -> list[LikeReceived]:
    return await service.likes_received(user_id, db)

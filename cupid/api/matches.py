"""
Cupid Discovery — Matches API

List, read, and unmatch the current user's matches.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.api.deps import get_current_user_id, get_match_service
from cupid.database import get_db
from cupid.schemas.match import MatchWithProfile, UnmatchResponse
from cupid.services.match_service import MatchService

logger = structlog.get_logger("cupid.api.matches")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /: Active matches
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[MatchWithProfile],
    summary="List active matches",
)
async def list_matches(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
    db: AsyncSession = Depends(get_db),
) -> list[MatchWithProfile]:
    """Active matches ordered by most recent message, then most recent match,
    each with the other participant's public profile."""
    return await service.list_matches(user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{match_id}: Single match
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{match_id}",
    response_model=MatchWithProfile,
    summary="Get a match you participate in",
)
async def get_match(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
    db: AsyncSession = Depends(get_db),
) -> MatchWithProfile:
    return await service.get_match(match_id, user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{match_id}: Unmatch
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{match_id}",
    response_model=UnmatchResponse,
    summary="Unmatch",
)
async def unmatch(
    match_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
    db: AsyncSession = Depends(get_db),
) -> UnmatchResponse:
    """Deactivate the match.  A later mutual like reactivates the same
    match id."""
    logger.bind(user_id=str(user_id), match_id=str(match_id)).info("unmatch_request")
    return await service.unmatch(match_id, user_id, db)

"""
Cupid Discovery — Profiles API

Read and edit the current user's own profile.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cupid.api.deps import get_current_user_id, get_profile_service
from cupid.database import get_db
from cupid.models.profile import Profile
from cupid.schemas.profile import ProfileResponse, ProfileUpdate
from cupid.services.profile_service import ProfileService

logger = structlog.get_logger("cupid.api.profiles")

router = APIRouter()


@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get your profile",
)
async def get_my_profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    return await service.get_profile_or_raise(user_id, db)


@router.patch(
    "/me",
    response_model=ProfileResponse,
    summary="Update your profile",
)
async def update_my_profile(
    payload: ProfileUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Apply a partial update.  Only fields present in the body are changed;
    edits to location, preferences or interests refresh your feed."""
    changes = payload.model_dump(exclude_unset=True)
    logger.bind(user_id=str(user_id)).info(
        "update_profile_request", fields=sorted(changes)
    )
    return await service.update_profile(user_id, changes, db)

"""
Cupid Discovery — Shared API dependencies

Identity is supplied by the upstream gateway as a trusted ``X-User-Id``
header.  Services are built per request around the request's cache façade;
the quota tracker holds no per-request state and is shared.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from cupid.services.cache_service import DiscoveryCache, get_cache
from cupid.services.feed_service import FeedService
from cupid.services.match_service import MatchService
from cupid.services.profile_service import ProfileService
from cupid.services.quota_service import QuotaService
from cupid.services.swipe_service import SwipeService

_quota_service: QuotaService | None = None


def _get_quota_service() -> QuotaService:
    global _quota_service
    if _quota_service is None:
        _quota_service = QuotaService()
    return _quota_service


USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
) -> uuid.UUID:
    """Resolve the authenticated user from the gateway header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id must be a UUID.",
        ) from None


def get_profile_service(cache: DiscoveryCache = Depends(get_cache)) -> ProfileService:
    return ProfileService(cache)


def get_feed_service(cache: DiscoveryCache = Depends(get_cache)) -> FeedService:
    return FeedService(cache, profile_service=ProfileService(cache))


def get_match_service(cache: DiscoveryCache = Depends(get_cache)) -> MatchService:
    return MatchService(cache)


def get_swipe_service(cache: DiscoveryCache = Depends(get_cache)) -> SwipeService:
    return SwipeService(
        cache,
        profile_service=ProfileService(cache),
        quota_service=_get_quota_service(),
        match_service=MatchService(cache),
    )

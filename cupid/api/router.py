"""
Cupid Discovery — Main API Router

Aggregates all sub-routers under a single prefix so that ``cupid.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from cupid.api import feed, matches, profiles, swipes

router = APIRouter()

router.include_router(feed.router, prefix="/feed", tags=["Discovery"])
router.include_router(swipes.router, prefix="/swipes", tags=["Swipes"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])

"""
Cupid Discovery — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from cupid.models.profile import Profile
from cupid.models.swipe import Swipe, SwipeAction
from cupid.models.match import Match

__all__ = [
    "Profile",
    "Swipe",
    "SwipeAction",
    "Match",
]

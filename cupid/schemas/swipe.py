from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

from cupid.models.swipe import SwipeAction

class SwipeCreate(BaseModel):
    target_id: UUID
    action: SwipeAction

class SwipeResult(BaseModel):
    matched: bool
    match_id: Optional[UUID] = None

class SwipeStats(BaseModel):
    count: int
    limit: Optional[int] = None  # None means unlimited

class LikeReceived(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    photos: list[str] = []
    action: SwipeAction
    liked_at: datetime

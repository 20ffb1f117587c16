from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

class CandidateProfile(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    gender: str
    bio: Optional[str] = None
    photos: list[str] = []
    interests: list[str] = []
    relationship_goal: Optional[str] = None
    last_active: Optional[datetime] = None
    is_premium: bool = False
    distance: Optional[int] = None  # rounded km, None when unknown
    shared_interests: list[str] = []

class FeedCountResponse(BaseModel):
    count: int

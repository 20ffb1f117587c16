from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

class MatchParticipant(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    photos: list[str] = []
    bio: Optional[str] = None

class MatchWithProfile(BaseModel):
    match_id: UUID
    matched_at: datetime
    last_message_at: Optional[datetime] = None
    is_active: bool = True
    other_user: MatchParticipant

class UnmatchResponse(BaseModel):
    status: str
    match_id: UUID

from pydantic import BaseModel, Field, model_validator
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

RelationshipGoal = Literal["casual", "relationship", "friends", "not_sure"]

class ProfileResponse(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    gender: str
    gender_preference: list[str] = []
    bio: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    photos: list[str] = []
    interests: list[str] = []
    relationship_goal: Optional[str] = None
    max_distance_km: Optional[int] = None
    age_range_min: Optional[int] = None
    age_range_max: Optional[int] = None
    is_active: bool
    is_premium: bool
    last_active: Optional[datetime] = None

    model_config = {"from_attributes": True}

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    gender_preference: Optional[list[str]] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    photos: Optional[list[str]] = Field(None, max_length=9)
    interests: Optional[list[str]] = None
    relationship_goal: Optional[RelationshipGoal] = None
    max_distance_km: Optional[int] = Field(None, ge=1, le=500)
    age_range_min: Optional[int] = Field(None, ge=18, le=99)
    age_range_max: Optional[int] = Field(None, ge=18, le=99)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _age_range_ordered(self) -> "ProfileUpdate":
        if (
            self.age_range_min is not None
            and self.age_range_max is not None
            and self.age_range_min > self.age_range_max
        ):
            raise ValueError("age_range_min must not exceed age_range_max")
        return self

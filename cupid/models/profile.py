"""
Cupid Discovery — Profile model (dating profile, preferences, location).
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, func, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from cupid.database import Base
from cupid.utils.time import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONList = JSON().with_variant(JSONB(), "postgresql")

# Matches any gender inside a ``gender_preference`` list.
GENDER_ANY = "everyone"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        unique=True, index=True, nullable=False,
        comment="Stable identifier supplied by the identity provider",
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[str] = mapped_column(String, nullable=False)
    gender_preference: Mapped[list] = mapped_column(
        JSONList, nullable=False, default=list,
        comment="Genders this user wants to see; 'everyone' matches any",
    )
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    photos: Mapped[list] = mapped_column(
        JSONList, nullable=False, default=list, comment="Array of photo URLs"
    )
    interests: Mapped[list] = mapped_column(
        JSONList, nullable=False, default=list, comment="Array of interest tags"
    )
    relationship_goal: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="casual / relationship / friends / not_sure"
    )

    max_distance_km: Mapped[int | None] = mapped_column(Integer, nullable=True, default=50)
    age_range_min: Mapped[int | None] = mapped_column(Integer, nullable=True, default=18)
    age_range_max: Mapped[int | None] = mapped_column(Integer, nullable=True, default=99)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    last_active: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=True
    )
    is_premium: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Paid tier flag owned by the billing service",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def accepts_gender(self, gender: str) -> bool:
        preference = self.gender_preference or []
        return GENDER_ANY in preference or gender in preference

    def __repr__(self) -> str:
        return f"<Profile user={self.user_id} age={self.age} gender={self.gender!r}>"

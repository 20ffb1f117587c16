"""
Cupid Discovery — Match registry.

A match row is keyed on the *canonical pair*: the participant whose id sorts
lower (as a string) is always ``user_low_id``.  The unique constraint on the
pair is what makes the insert-or-reactivate upsert race-free.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from cupid.database import Base
from cupid.utils.time import utcnow


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_match_pair"),
        CheckConstraint(
            "CAST(user_low_id AS TEXT) < CAST(user_high_id AS TEXT)",
            name="ck_match_canonical_order",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_low_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_high_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True
    )

    @staticmethod
    def canonical_pair(
        user_a: uuid.UUID, user_b: uuid.UUID
    ) -> tuple[uuid.UUID, uuid.UUID]:
        """Order two user ids so that (A, B) and (B, A) map to the same key."""
        if str(user_a) <= str(user_b):
            return user_a, user_b
        return user_b, user_a

    def involves(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_low_id, self.user_high_id)

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def __repr__(self) -> str:
        return (
            f"<Match {self.user_low_id} <-> {self.user_high_id} "
            f"active={self.is_active}>"
        )

"""
Cupid Discovery — Swipe ledger (append-only).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from cupid.database import Base
from cupid.utils.time import utcnow


class SwipeAction(str, enum.Enum):
    LIKE = "like"
    PASS = "pass"
    SUPER_LIKE = "super_like"

    @property
    def is_positive(self) -> bool:
        return self is not SwipeAction.PASS


# Actions that count toward reciprocity and the daily quota.
POSITIVE_ACTIONS: tuple[str, ...] = (SwipeAction.LIKE.value, SwipeAction.SUPER_LIKE.value)


class Swipe(Base):
    __tablename__ = "swipes"
    __table_args__ = (
        UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
        CheckConstraint(
            "action IN ('like', 'pass', 'super_like')", name="ck_swipe_action"
        ),
        CheckConstraint("swiper_id <> target_id", name="ck_swipe_not_self"),
        Index("ix_swipes_swiper_created", "swiper_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    swiper_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(
        String, nullable=False, comment="like / pass / super_like"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Swipe {self.swiper_id} -> {self.target_id} action={self.action!r}>"

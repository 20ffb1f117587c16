"""Initial schema — profiles, swipes, matches.

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Stable identifier supplied by the identity provider",
        ),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("age", sa.Integer, nullable=False),
        sa.Column("gender", sa.String, nullable=False),
        sa.Column(
            "gender_preference",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Genders this user wants to see; 'everyone' matches any",
        ),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column(
            "photos",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of photo URLs",
        ),
        sa.Column(
            "interests",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of interest tags",
        ),
        sa.Column(
            "relationship_goal",
            sa.String,
            nullable=True,
            comment="casual / relationship / friends / not_sure",
        ),
        sa.Column("max_distance_km", sa.Integer, nullable=True, server_default="50"),
        sa.Column("age_range_min", sa.Integer, nullable=True, server_default="18"),
        sa.Column("age_range_max", sa.Integer, nullable=True, server_default="99"),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column(
            "last_active",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.Column(
            "is_premium",
            sa.Boolean,
            server_default="false",
            nullable=False,
            comment="Paid tier flag owned by the billing service",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)
    # Feed prefilter: active, recently seen candidates.
    op.create_index(
        "ix_profiles_active_last_active", "profiles", ["is_active", "last_active"]
    )

    # ── 2. swipes (append-only ledger) ──────────────────────────────
    op.create_table(
        "swipes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "swiper_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "target_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "action",
            sa.String,
            nullable=False,
            comment="like / pass / super_like",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
        sa.CheckConstraint(
            "action IN ('like', 'pass', 'super_like')", name="ck_swipe_action"
        ),
        sa.CheckConstraint("swiper_id <> target_id", name="ck_swipe_not_self"),
    )
    op.create_index("ix_swipes_target_id", "swipes", ["target_id"])
    op.create_index("ix_swipes_swiper_created", "swipes", ["swiper_id", "created_at"])

    # ── 3. matches (canonical pair) ─────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_low_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_high_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "matched_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_low_id", "user_high_id", name="uq_match_pair"),
        sa.CheckConstraint(
            "CAST(user_low_id AS TEXT) < CAST(user_high_id AS TEXT)",
            name="ck_match_canonical_order",
        ),
    )
    op.create_index("ix_matches_user_low_id", "matches", ["user_low_id"])
    op.create_index("ix_matches_user_high_id", "matches", ["user_high_id"])


def downgrade() -> None:
    op.drop_table("matches")
    op.drop_table("swipes")
    op.drop_table("profiles")

"""Initial schema: users, courses, blocks, matches, partner ratings.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

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
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String, unique=True, index=True, nullable=False),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("university", sa.String, index=True, nullable=False),
        sa.Column("year", sa.String, nullable=False, comment="1st Year .. PhD"),
        sa.Column("major", sa.String, nullable=False),
        sa.Column("campus", sa.String, nullable=True),
        sa.Column("city", sa.String, nullable=True),
        sa.Column("state", sa.String, nullable=True),
        sa.Column(
            "study_preferences",
            postgresql.JSONB,
            nullable=True,
            comment="StudyPreferences document",
        ),
        sa.Column(
            "availability",
            postgresql.JSONB,
            nullable=True,
            comment="weekday -> list of time-slot labels",
        ),
        sa.Column("reputation", sa.Float, server_default="5.0", nullable=False),
        sa.Column("ratings_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("total_rating_score", sa.Float, server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("verified", sa.Boolean, server_default="false", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "reputation >= 0 AND reputation <= 5",
            name="ck_user_reputation_range",
        ),
    )

    # ── 2. user_courses ─────────────────────────────────────────────
    op.create_table(
        "user_courses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "course_code",
            sa.String,
            index=True,
            nullable=False,
            comment="Upper-cased, e.g. CS101",
        ),
        sa.UniqueConstraint("user_id", "course_code", name="uq_user_course"),
    )

    # ── 3. user_blocks ──────────────────────────────────────────────
    op.create_table(
        "user_blocks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "blocker_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "blocked_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("reason", sa.String, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block_pair"),
        sa.CheckConstraint("blocker_id <> blocked_id", name="ck_user_block_not_self"),
    )

    # ── 4. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_a_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            comment="Smaller id of the pair",
        ),
        sa.Column(
            "user_b_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "initiated_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("compatibility_score", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.String,
            server_default="pending",
            nullable=False,
            comment="pending / accepted / rejected / expired",
        ),
        sa.Column(
            "breakdown",
            postgresql.JSONB,
            nullable=True,
            comment="Per-factor sub-scores at creation",
        ),
        sa.Column("common_courses", postgresql.JSONB, nullable=True),
        sa.Column("match_reason", sa.String, nullable=False),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        sa.CheckConstraint("user_a_id <> user_b_id", name="ck_match_not_self"),
        sa.CheckConstraint(
            "compatibility_score >= 0 AND compatibility_score <= 1",
            name="ck_match_score_range",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name="ck_match_status",
        ),
    )
    op.create_index("ix_matches_user_a_status", "matches", ["user_a_id", "status"])
    op.create_index("ix_matches_user_b_status", "matches", ["user_b_id", "status"])
    op.create_index("ix_matches_status_expires_at", "matches", ["status", "expires_at"])

    # ── 5. partner_ratings ──────────────────────────────────────────
    op.create_table(
        "partner_ratings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "rater_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "rated_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "match_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("matches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("rating", sa.Integer, nullable=False, comment="1-5"),
        sa.Column("feedback", sa.String(1000), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_rating_range"),
        sa.CheckConstraint("rater_id <> rated_id", name="ck_rating_not_self"),
    )


def downgrade() -> None:
    op.drop_table("partner_ratings")
    op.drop_index("ix_matches_status_expires_at", table_name="matches")
    op.drop_index("ix_matches_user_b_status", table_name="matches")
    op.drop_index("ix_matches_user_a_status", table_name="matches")
    op.drop_table("matches")
    op.drop_table("user_blocks")
    op.drop_table("user_courses")
    op.drop_table("users")

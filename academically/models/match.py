"""
AcademicAlly — Match and PartnerRating models.

Participants are stored in canonical order (``user_a_id < user_b_id``) so a
pair has exactly one row; the UNIQUE constraint on the pair is what resolves
concurrent creation races.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from academically.database import Base, JSONType, utcnow

MATCH_STATUSES: tuple[str, ...] = ("pending", "accepted", "rejected", "expired")


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        CheckConstraint("user_a_id <> user_b_id", name="ck_match_not_self"),
        CheckConstraint(
            "compatibility_score >= 0 AND compatibility_score <= 1",
            name="ck_match_score_range",
        ),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name="ck_match_status",
        ),
        Index("ix_matches_user_a_status", "user_a_id", "status"),
        Index("ix_matches_user_b_status", "user_b_id", "status"),
        Index("ix_matches_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    initiated_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    compatibility_score: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String, default="pending", nullable=False,
        comment="pending / accepted / rejected / expired",
    )
    breakdown: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Per-factor sub-scores at creation"
    )
    common_courses: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    match_reason: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Match {self.user_a_id} <-> {self.user_b_id} "
            f"status={self.status!r} score={self.compatibility_score:.2f}>"
        )


class PartnerRating(Base):
    __tablename__ = "partner_ratings"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_rating_range"),
        CheckConstraint("rater_id <> rated_id", name="ck_rating_not_self"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rater_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rated_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    match_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="SET NULL"), nullable=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    feedback: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PartnerRating {self.rater_id} -> {self.rated_id} rating={self.rating}>"

"""
AcademicAlly — User directory models (users, enrolled courses, blocks).
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academically.database import Base, JSONType, utcnow


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("reputation >= 0 AND reputation <= 5", name="ck_user_reputation_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    university: Mapped[str] = mapped_column(String, index=True, nullable=False)
    year: Mapped[str] = mapped_column(
        String, nullable=False, comment="1st Year .. PhD"
    )
    major: Mapped[str] = mapped_column(String, nullable=False)

    # ── Location ───────────────────────────────────────────────────
    campus: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)

    # ── Study habits ───────────────────────────────────────────────
    study_preferences: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="StudyPreferences document"
    )
    availability: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="weekday -> list of time-slot labels"
    )

    # ── Reputation ─────────────────────────────────────────────────
    reputation: Mapped[float] = mapped_column(Float, default=5.0, nullable=False)
    ratings_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_rating_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # ── Account status ─────────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    courses: Mapped[list["UserCourse"]] = relationship(
        "UserCourse",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def course_codes(self) -> list[str]:
        return [c.course_code for c in self.courses]

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"


class UserCourse(Base):
    __tablename__ = "user_courses"
    __table_args__ = (
        UniqueConstraint("user_id", "course_code", name="uq_user_course"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    course_code: Mapped[str] = mapped_column(
        String, index=True, nullable=False, comment="Upper-cased, e.g. CS101"
    )

    user: Mapped["User"] = relationship("User", back_populates="courses")

    def __repr__(self) -> str:
        return f"<UserCourse {self.user_id} {self.course_code!r}>"


class UserBlock(Base):
    __tablename__ = "user_blocks"
    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block_pair"),
        CheckConstraint("blocker_id <> blocked_id", name="ck_user_block_not_self"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    blocker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    blocked_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserBlock {self.blocker_id} -x-> {self.blocked_id}>"

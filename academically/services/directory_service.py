"""
AcademicAlly — User directory access.

The directory owns every user attribute the matching engine reads (courses,
study preferences, availability, location, reputation, block lists).  The
engine sees users only through the immutable ``UserProfile`` view built here
and writes back only reputation (after a rating) and block entries.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from academically.errors import UserNotFound, ValidationError
from academically.models.user import User, UserBlock, UserCourse
from academically.schemas.match import MatchFilters
from academically.schemas.profile import Location, StudyPreferences, UserProfile
from academically.schemas.user import UserCreate

logger = structlog.get_logger("academically.directory_service")


def to_profile(
    user: User,
    blocked_user_ids: Iterable[uuid.UUID] = (),
    blocked_by_ids: Iterable[uuid.UUID] = (),
) -> UserProfile:
    """Build the read-only ``UserProfile`` view of an ORM ``User``.

    Raises ``pydantic.ValidationError`` when stored preference or
    availability documents are malformed.
    """
    location = None
    if user.campus or user.city or user.state:
        location = Location(campus=user.campus, city=user.city, state=user.state)

    preferences = None
    if user.study_preferences:
        preferences = StudyPreferences.model_validate(user.study_preferences)

    return UserProfile(
        id=user.id,
        display_name=user.display_name,
        university=user.university,
        major=user.major,
        year=user.year,
        courses=user.course_codes,
        preferences=preferences,
        availability=user.availability,
        location=location,
        reputation=user.reputation,
        blocked_user_ids=frozenset(blocked_user_ids),
        blocked_by_ids=frozenset(blocked_by_ids),
    )


class UserDirectory:
    """SQLAlchemy-backed user directory bound to one session."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db = db_session

    # ── Reads ───────────────────────────────────────────────────────

    async def get_user(self, user_id: uuid.UUID) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFound(f"User {user_id} not found.", user_id=str(user_id))
        return user

    async def get_profile(self, user_id: uuid.UUID) -> UserProfile:
        """Return the full profile of ``user_id`` including both block lists.

        Raises ``ValidationError`` when the stored preference or availability
        documents cannot be parsed.
        """
        user = await self.get_user(user_id)
        blocked, blocked_by = await self._block_sets(user_id)
        try:
            return to_profile(user, blocked, blocked_by)
        except PydanticValidationError as exc:
            logger.warning(
                "profile_malformed",
                user_id=str(user_id),
                errors=exc.error_count(),
            )
            raise ValidationError(
                "Stored profile data is malformed.",
                user_id=str(user_id),
            ) from exc

    async def query_profiles(
        self,
        filters: MatchFilters,
        exclude: set[uuid.UUID],
        fetch_count: int,
    ) -> list[UserProfile]:
        """Active, verified users matching ``filters`` and not in ``exclude``.

        Rows whose stored preferences cannot be parsed are skipped so one bad
        record never blocks a whole retrieval.
        """
        stmt = select(User).where(
            User.is_active.is_(True),
            User.verified.is_(True),
        )
        if exclude:
            stmt = stmt.where(User.id.not_in(exclude))
        if filters.university:
            stmt = stmt.where(User.university == filters.university)
        if filters.year:
            stmt = stmt.where(User.year == filters.year)
        if filters.major:
            stmt = stmt.where(User.major.ilike(f"%{filters.major}%"))
        if filters.courses:
            codes = [c.strip().upper() for c in filters.courses if c.strip()]
            if codes:
                stmt = stmt.where(
                    User.id.in_(
                        select(UserCourse.user_id).where(UserCourse.course_code.in_(codes))
                    )
                )
        if filters.min_reputation is not None:
            stmt = stmt.where(User.reputation >= filters.min_reputation)

        stmt = stmt.order_by(User.reputation.desc(), User.id).limit(fetch_count)

        result = await self.db.execute(stmt)
        users = result.scalars().all()

        profiles: list[UserProfile] = []
        for user in users:
            try:
                profiles.append(to_profile(user))
            except PydanticValidationError as exc:
                logger.warning(
                    "candidate_profile_malformed",
                    user_id=str(user.id),
                    errors=exc.error_count(),
                )
        return profiles

    # ── Writes ──────────────────────────────────────────────────────

    async def create_user(self, payload: UserCreate) -> User:
        location = payload.location
        user = User(
            email=payload.email.strip().lower(),
            display_name=payload.display_name,
            university=payload.university,
            year=payload.year,
            major=payload.major,
            campus=location.campus if location else None,
            city=location.city if location else None,
            state=location.state if location else None,
            study_preferences=(
                payload.study_preferences.model_dump(exclude_none=True)
                if payload.study_preferences else None
            ),
            availability=(
                {day.lower(): slots for day, slots in payload.availability.items()}
                if payload.availability else None
            ),
            verified=payload.verified,
            courses=[
                UserCourse(course_code=code)
                for code in sorted({c.strip().upper() for c in payload.courses if c.strip()})
            ],
        )
        self.db.add(user)
        await self.db.flush()

        logger.info("user_created", user_id=str(user.id), courses=len(user.courses))
        return user

    async def update_reputation(self, user_id: uuid.UUID, rating: int) -> User:
        """Fold one rating into the running-average reputation."""
        user = await self.get_user(user_id)
        user.total_rating_score = (user.total_rating_score or 0.0) + rating
        user.ratings_count = (user.ratings_count or 0) + 1
        user.reputation = round(user.total_rating_score / user.ratings_count, 4)
        await self.db.flush()

        logger.info(
            "reputation_updated",
            user_id=str(user_id),
            rating=rating,
            reputation=user.reputation,
            ratings_count=user.ratings_count,
        )
        return user

    async def block_user(
        self,
        blocker_id: uuid.UUID,
        blocked_id: uuid.UUID,
        reason: str | None = None,
    ) -> UserBlock:
        """Block ``blocked_id`` for ``blocker_id``.  Blocking twice is a no-op.

        Existing Match rows between the two users are left untouched; the
        block only affects future candidate retrieval.
        """
        if blocker_id == blocked_id:
            raise ValidationError("Users cannot block themselves.", user_id=str(blocker_id))
        await self.get_user(blocker_id)
        await self.get_user(blocked_id)

        result = await self.db.execute(
            select(UserBlock).where(
                UserBlock.blocker_id == blocker_id,
                UserBlock.blocked_id == blocked_id,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        block = UserBlock(blocker_id=blocker_id, blocked_id=blocked_id, reason=reason)
        self.db.add(block)
        await self.db.flush()

        logger.info("user_blocked", blocker_id=str(blocker_id), blocked_id=str(blocked_id))
        return block

    async def unblock_user(self, blocker_id: uuid.UUID, blocked_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            delete(UserBlock).where(
                UserBlock.blocker_id == blocker_id,
                UserBlock.blocked_id == blocked_id,
            )
        )
        removed = (result.rowcount or 0) > 0
        logger.info(
            "user_unblocked",
            blocker_id=str(blocker_id),
            blocked_id=str(blocked_id),
            removed=removed,
        )
        return removed

    async def list_blocked(self, blocker_id: uuid.UUID) -> list[UserBlock]:
        await self.get_user(blocker_id)
        result = await self.db.execute(
            select(UserBlock)
            .where(UserBlock.blocker_id == blocker_id)
            .order_by(UserBlock.created_at.desc())
        )
        return list(result.scalars().all())

    # ── Private helpers ─────────────────────────────────────────────

    async def _block_sets(
        self, user_id: uuid.UUID
    ) -> tuple[set[uuid.UUID], set[uuid.UUID]]:
        """Return (users ``user_id`` blocked, users who blocked ``user_id``)."""
        result = await self.db.execute(
            select(UserBlock.blocker_id, UserBlock.blocked_id).where(
                or_(UserBlock.blocker_id == user_id, UserBlock.blocked_id == user_id)
            )
        )
        blocked: set[uuid.UUID] = set()
        blocked_by: set[uuid.UUID] = set()
        for blocker_id, blocked_id in result.all():
            if blocker_id == user_id:
                blocked.add(blocked_id)
            else:
                blocked_by.add(blocker_id)
        return blocked, blocked_by

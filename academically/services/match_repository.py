"""
AcademicAlly — Match persistence.

All writes go through ``insert_canonical`` (pair stored smallest id first,
uniqueness enforced by ``uq_match_pair``), ``update_status`` (conditional on
the row still being pending) and ``bulk_expire`` (a single UPDATE scoped by
status and expiry).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academically.errors import DuplicateMatchError
from academically.models.match import MATCH_STATUSES, Match, PartnerRating

logger = structlog.get_logger("academically.match_repository")

SortField = Literal["created_at", "compatibility_score", "expires_at"]


class MatchRepository:
    """Match store bound to one ``AsyncSession``."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db = db_session

    # ── Writes ──────────────────────────────────────────────────────

    async def insert_canonical(self, match: Match) -> Match:
        """Insert ``match`` after putting its pair in canonical order.

        Raises
        ------
        DuplicateMatchError
            If a Match already exists for the unordered pair.  This is the
            expected outcome for the loser of a concurrent create.
        """
        if match.user_a_id > match.user_b_id:
            match.user_a_id, match.user_b_id = match.user_b_id, match.user_a_id

        user_a, user_b = str(match.user_a_id), str(match.user_b_id)

        # The SAVEPOINT confines a conflict to this insert; earlier work in
        # the caller's transaction survives.
        try:
            async with self.db.begin_nested():
                self.db.add(match)
                await self.db.flush()
        except IntegrityError as exc:
            logger.info("match_insert_conflict", user_a=user_a, user_b=user_b)
            raise DuplicateMatchError(
                "A match already exists for this pair.",
                user_a_id=user_a,
                user_b_id=user_b,
            ) from exc

        logger.info(
            "match_stored",
            match_id=str(match.id),
            compatibility_score=match.compatibility_score,
        )
        return match

    async def update_status(
        self,
        match_id: uuid.UUID,
        status: str,
        responded_at: datetime,
        expected_status: str = "pending",
    ) -> bool:
        """Move a match to ``status`` if it is still ``expected_status``.

        Returns ``False`` when the row was not in the expected state, which
        means another writer got there first.
        """
        result = await self.db.execute(
            update(Match)
            .where(Match.id == match_id, Match.status == expected_status)
            .values(status=status, responded_at=responded_at, updated_at=responded_at)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def bulk_expire(self, now: datetime) -> int:
        """Expire every pending match whose ``expires_at`` is before ``now``."""
        result = await self.db.execute(
            update(Match)
            .where(Match.status == "pending", Match.expires_at < now)
            .values(status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def add_rating(self, rating: PartnerRating) -> PartnerRating:
        self.db.add(rating)
        await self.db.flush()
        return rating

    # ── Reads ───────────────────────────────────────────────────────

    async def get(self, match_id: uuid.UUID) -> Match | None:
        # Status updates bypass the identity map, so always reload the row.
        result = await self.db.execute(
            select(Match)
            .where(Match.id == match_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_pair(self, user_x: uuid.UUID, user_y: uuid.UUID) -> Match | None:
        user_a, user_b = min(user_x, user_y), max(user_x, user_y)
        result = await self.db.execute(
            select(Match).where(Match.user_a_id == user_a, Match.user_b_id == user_b)
        )
        return result.scalar_one_or_none()

    async def find_for_user(
        self,
        user_id: uuid.UUID,
        status: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        sort_by: SortField = "created_at",
        descending: bool = True,
    ) -> tuple[list[Match], int]:
        """Return one page of the user's matches and the unpaged total."""
        conditions = [or_(Match.user_a_id == user_id, Match.user_b_id == user_id)]
        if status is not None:
            conditions.append(Match.status == status)

        total = await self.db.scalar(
            select(func.count()).select_from(Match).where(*conditions)
        )

        column = getattr(Match, sort_by)
        stmt = (
            select(Match)
            .where(*conditions)
            .order_by(column.desc() if descending else column.asc(), Match.id)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all()), int(total or 0)

    async def partner_ids_for_user(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        """Ids of every user sharing a Match with ``user_id``, any status."""
        result = await self.db.execute(
            select(Match.user_a_id, Match.user_b_id).where(
                or_(Match.user_a_id == user_id, Match.user_b_id == user_id)
            )
        )
        partners: set[uuid.UUID] = set()
        for user_a, user_b in result.all():
            partners.add(user_b if user_a == user_id else user_a)
        return partners

    async def stats_for_user(self, user_id: uuid.UUID) -> dict:
        """Counts by status, sent/received counts and mean compatibility."""
        involves_user = or_(Match.user_a_id == user_id, Match.user_b_id == user_id)

        rows = await self.db.execute(
            select(Match.status, func.count())
            .where(involves_user)
            .group_by(Match.status)
        )
        by_status = {s: 0 for s in MATCH_STATUSES}
        for status, count in rows.all():
            by_status[status] = int(count)

        avg_score = await self.db.scalar(
            select(func.avg(Match.compatibility_score)).where(involves_user)
        )
        sent = await self.db.scalar(
            select(func.count()).select_from(Match).where(
                and_(involves_user, Match.initiated_by == user_id)
            )
        )

        total = sum(by_status.values())
        return {
            "by_status": by_status,
            "total": total,
            "sent": int(sent or 0),
            "received": total - int(sent or 0),
            "avg_compatibility": round(float(avg_score), 2) if avg_score is not None else 0.0,
        }

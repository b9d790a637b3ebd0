"""
AcademicAlly — Matching engine facade.

Wires the engine's parts together behind the operations exposed to callers:

  find_matches          Candidate retrieval → scoring → ranking & dedup
  get_compatibility     Scoring for one explicit pair
  create_match_request  Scoring → lifecycle create → repository
  respond_to_match      Lifecycle accept / reject
  list_matches          Paged, filtered listing of a user's matches
  get_match_stats       Counts by status and mean compatibility
  rate_partner          Rating record + running-average reputation

Match events are published once each state change has committed, in a
background task, so a notification failure never rolls the change back and
a slow subscriber never holds the transaction open.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from academically.config import get_settings
from academically.errors import (
    MatchNotFound,
    SelfMatchError,
    UserNotInMatchError,
    ValidationError,
)
from academically.models.match import MATCH_STATUSES, Match, PartnerRating
from academically.models.user import UserBlock
from academically.schemas.match import (
    MatchFilters,
    MatchRead,
    MatchStats,
    PagedMatches,
    RankedCandidate,
    RatingResult,
    ScoreResult,
)
from academically.services.candidate_service import CandidateRetriever
from academically.services.compatibility_service import CompatibilityScorer
from academically.services.directory_service import UserDirectory
from academically.services.match_lifecycle import (
    MatchLifecycle,
    age_in_days,
    get_other_participant,
    is_expired,
)
from academically.services.match_repository import MatchRepository
from academically.services.notification_service import (
    MATCH_ACCEPTED,
    MATCH_CREATED,
    MATCH_DECLINED,
    MatchEventPublisher,
    publish_in_background,
)
from academically.services.ranking_service import rank_candidates

logger = structlog.get_logger("academically.matching_service")

_RESPONSE_ACTIONS: dict[str, tuple[str, str]] = {
    # action -> (lifecycle method, event)
    "accept": ("accept", MATCH_ACCEPTED),
    "decline": ("reject", MATCH_DECLINED),
}
_SORT_FIELDS: tuple[str, ...] = ("created_at", "compatibility_score", "expires_at")
MAX_PAGE_SIZE: int = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_match_read(
    match: Match,
    now: datetime,
    viewer_id: uuid.UUID | None = None,
) -> MatchRead:
    """Flatten a Match row, evaluating computed fields at ``now``."""
    return MatchRead(
        match_id=match.id,
        user_a_id=match.user_a_id,
        user_b_id=match.user_b_id,
        other_user_id=(
            get_other_participant(match, viewer_id) if viewer_id is not None else None
        ),
        initiated_by=match.initiated_by,
        compatibility_score=match.compatibility_score,
        status=match.status,
        breakdown=match.breakdown or {},
        common_courses=match.common_courses or [],
        match_reason=match.match_reason,
        message=match.message,
        created_at=match.created_at,
        responded_at=match.responded_at,
        expires_at=match.expires_at,
        is_expired=is_expired(match, now),
        age_in_days=age_in_days(match, now),
    )


class MatchingService:
    """Study-partner matching engine bound to one database session.

    Collaborators are injected at construction so that the service can be
    tested with alternate weights, a fake clock or a recording publisher.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        scorer: CompatibilityScorer | None = None,
        publisher: MatchEventPublisher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()

        self.db = db_session
        self.clock = clock or _utcnow
        self.scorer = scorer or CompatibilityScorer(settings.scoring_weights)
        self.publisher = publisher or MatchEventPublisher()

        self.min_compatibility: float = settings.MIN_COMPATIBILITY
        self.default_limit: int = settings.DEFAULT_MATCH_LIMIT
        self.max_limit: int = settings.MAX_MATCH_LIMIT

        self.directory = UserDirectory(db_session)
        self.repository = MatchRepository(db_session)
        self.retriever = CandidateRetriever(
            self.directory,
            overfetch_factor=settings.CANDIDATE_OVERFETCH_FACTOR,
        )
        self.lifecycle = MatchLifecycle(
            self.repository,
            self.directory,
            self.scorer,
            expiry_days=settings.MATCH_EXPIRY_DAYS,
            clock=self.clock,
        )

    # ── Discovery ─────────────────────────────────────────────────────────

    async def find_matches(
        self,
        requester_id: uuid.UUID,
        filters: MatchFilters | dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[RankedCandidate]:
        """Suggest up to ``limit`` compatible study partners.

        Parameters
        ----------
        requester_id:
            The student asking for suggestions.
        filters:
            Optional university / year / major / courses / min_reputation
            filters.  Malformed filters raise ``ValidationError``.
        limit:
            Maximum suggestions (defaults to ``DEFAULT_MATCH_LIMIT``).

        Returns
        -------
        list[RankedCandidate]
            Candidates above the minimum compatibility who have no Match with
            the requester yet, best first.
        """
        limit = self._check_limit(limit if limit is not None else self.default_limit)
        log = logger.bind(requester_id=str(requester_id), limit=limit)
        log.info("find_matches_start")

        requester, candidates = await self.retriever.retrieve(requester_id, filters, limit)

        scored = [(candidate, self.scorer.score(requester, candidate)) for candidate in candidates]
        degraded = sum(1 for _, result in scored if result.degraded)

        existing_partners = await self.repository.partner_ids_for_user(requester_id)
        ranked = rank_candidates(
            scored,
            existing_partners,
            limit=limit,
            threshold=self.min_compatibility,
        )

        log.info(
            "find_matches_complete",
            total_candidates=len(candidates),
            degraded=degraded,
            existing_partners=len(existing_partners),
            returned=len(ranked),
        )
        return ranked

    async def get_compatibility(
        self,
        user_id: uuid.UUID,
        partner_id: uuid.UUID,
    ) -> ScoreResult:
        """Detailed compatibility between ``user_id`` and ``partner_id``."""
        if user_id == partner_id:
            raise SelfMatchError("Cannot score a user against themselves.", user_id=str(user_id))

        user = await self.directory.get_profile(user_id)
        partner = await self.directory.get_profile(partner_id)
        result = self.scorer.score(user, partner)

        logger.info(
            "compatibility_calculated",
            user_id=str(user_id),
            partner_id=str(partner_id),
            total=result.total,
            degraded=result.degraded,
        )
        return result

    # ── Match lifecycle ───────────────────────────────────────────────────

    async def create_match_request(
        self,
        initiator_id: uuid.UUID,
        target_id: uuid.UUID,
        message: str | None = None,
    ) -> MatchRead:
        match = await self.lifecycle.create(initiator_id, target_id, message=message)
        await self._commit_and_publish(MATCH_CREATED, match)
        return to_match_read(match, self.clock(), viewer_id=initiator_id)

    async def respond_to_match(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        action: str,
    ) -> MatchRead:
        """Accept or decline a pending match on behalf of a participant."""
        if action not in _RESPONSE_ACTIONS:
            raise ValidationError(
                'Action must be either "accept" or "decline".',
                action=action,
            )
        method_name, event = _RESPONSE_ACTIONS[action]

        match = await getattr(self.lifecycle, method_name)(match_id, user_id)
        await self._commit_and_publish(event, match)
        return to_match_read(match, self.clock(), viewer_id=user_id)

    async def get_match(self, match_id: uuid.UUID, user_id: uuid.UUID) -> MatchRead:
        match = await self.repository.get(match_id)
        if match is None:
            raise MatchNotFound(f"Match {match_id} not found.", match_id=str(match_id))
        return to_match_read(match, self.clock(), viewer_id=user_id)

    async def expire_stale_matches(self) -> int:
        return await self.lifecycle.expire_sweep()

    # ── Listing & stats ───────────────────────────────────────────────────

    async def list_matches(
        self,
        user_id: uuid.UUID,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> PagedMatches:
        if status is not None and status not in MATCH_STATUSES:
            raise ValidationError(f"Unknown match status {status!r}.", status=status)
        if page < 1:
            raise ValidationError("page must be at least 1.", page=page)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}.", limit=limit
            )
        if sort_by not in _SORT_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by!r}.", sort_by=sort_by)
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be 'asc' or 'desc'.", sort_order=sort_order)

        await self.directory.get_user(user_id)

        matches, total = await self.repository.find_for_user(
            user_id,
            status=status,
            offset=(page - 1) * limit,
            limit=limit,
            sort_by=sort_by,
            descending=sort_order == "desc",
        )
        now = self.clock()
        total_pages = math.ceil(total / limit) if total else 0

        logger.info(
            "list_matches",
            user_id=str(user_id),
            status=status,
            page=page,
            returned=len(matches),
            total=total,
        )
        return PagedMatches(
            matches=[to_match_read(m, now, viewer_id=user_id) for m in matches],
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    async def get_match_stats(self, user_id: uuid.UUID) -> MatchStats:
        await self.directory.get_user(user_id)
        stats = await self.repository.stats_for_user(user_id)
        logger.info("match_stats", user_id=str(user_id), total=stats["total"])
        return MatchStats(**stats)

    # ── Reputation ────────────────────────────────────────────────────────

    async def rate_partner(
        self,
        rater_id: uuid.UUID,
        partner_id: uuid.UUID,
        rating: int,
        match_id: uuid.UUID | None = None,
        feedback: str | None = None,
    ) -> RatingResult:
        """Record a post-session rating and fold it into the partner's
        reputation.  Independent of the match's status."""
        if not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5.", rating=rating)
        if rater_id == partner_id:
            raise ValidationError("Users cannot rate themselves.", user_id=str(rater_id))

        await self.directory.get_user(rater_id)
        await self.directory.get_user(partner_id)

        if match_id is not None:
            match = await self.repository.get(match_id)
            if match is None:
                raise MatchNotFound(f"Match {match_id} not found.", match_id=str(match_id))
            if get_other_participant(match, rater_id) != partner_id:
                raise UserNotInMatchError(
                    "Partner is not part of this match.",
                    match_id=str(match_id),
                    user_id=str(partner_id),
                )

        await self.repository.add_rating(
            PartnerRating(
                rater_id=rater_id,
                rated_id=partner_id,
                match_id=match_id,
                rating=rating,
                feedback=feedback,
            )
        )
        partner = await self.directory.update_reputation(partner_id, rating)

        logger.info(
            "partner_rated",
            rater_id=str(rater_id),
            partner_id=str(partner_id),
            rating=rating,
            new_reputation=partner.reputation,
        )
        return RatingResult(
            rating=rating,
            new_reputation=partner.reputation,
            ratings_count=partner.ratings_count,
        )

    # ── Blocking ──────────────────────────────────────────────────────────

    async def block_user(
        self,
        blocker_id: uuid.UUID,
        blocked_id: uuid.UUID,
        reason: str | None = None,
    ) -> UserBlock:
        return await self.directory.block_user(blocker_id, blocked_id, reason)

    async def unblock_user(self, blocker_id: uuid.UUID, blocked_id: uuid.UUID) -> bool:
        return await self.directory.unblock_user(blocker_id, blocked_id)

    async def list_blocked(self, blocker_id: uuid.UUID) -> list[UserBlock]:
        return await self.directory.list_blocked(blocker_id)

    # ── Private helpers ───────────────────────────────────────────────────

    def _check_limit(self, limit: int) -> int:
        if not 1 <= limit <= self.max_limit:
            raise ValidationError(
                f"limit must be between 1 and {self.max_limit}.", limit=limit
            )
        return limit

    async def _commit_and_publish(self, event: str, match: Match) -> None:
        # Subscribers may read the match back, so it must be visible first.
        await self.db.commit()
        publish_in_background(self.publisher, event, match)

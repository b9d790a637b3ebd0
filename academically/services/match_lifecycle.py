"""
AcademicAlly — Match lifecycle state machine.

    pending ──accept──▶ accepted   (participant only, terminal)
       │  └──reject──▶ rejected   (participant only, terminal)
       └────sweep────▶ expired    (time-triggered, terminal)

Computed attributes of a match (expiry, age, the other participant) are pure
functions of the match and the current time; nothing is cached on the row.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from academically.errors import (
    DuplicateMatchError,
    MatchNotFound,
    SelfMatchError,
    UnauthorizedTransition,
    UserNotInMatchError,
)
from academically.models.match import Match
from academically.schemas.match import ScoreResult
from academically.services.compatibility_service import CompatibilityScorer
from academically.services.directory_service import UserDirectory
from academically.services.match_repository import MatchRepository

logger = structlog.get_logger("academically.match_lifecycle")

DEFAULT_EXPIRY_DAYS: int = 7
TERMINAL_STATUSES: frozenset[str] = frozenset({"accepted", "rejected", "expired"})


# ──────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ──────────────────────────────────────────────────────────────────────────────

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def canonical_pair(user_x: uuid.UUID, user_y: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    if user_x == user_y:
        raise SelfMatchError("Cannot match a user with themselves.", user_id=str(user_x))
    return (user_x, user_y) if user_x < user_y else (user_y, user_x)


def is_expired(match: Match, now: datetime) -> bool:
    """True once a match is past its expiry, whether or not swept yet."""
    if match.status == "expired":
        return True
    return match.status == "pending" and as_utc(match.expires_at) < as_utc(now)


def age_in_days(match: Match, now: datetime) -> int:
    return max(0, (as_utc(now) - as_utc(match.created_at)).days)


def includes_user(match: Match, user_id: uuid.UUID) -> bool:
    return user_id in (match.user_a_id, match.user_b_id)


def get_other_participant(match: Match, user_id: uuid.UUID) -> uuid.UUID:
    if match.user_a_id == user_id:
        return match.user_b_id
    if match.user_b_id == user_id:
        return match.user_a_id
    raise UserNotInMatchError(
        "User is not part of this match.",
        match_id=str(match.id),
        user_id=str(user_id),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────────────────────

class MatchLifecycle:
    """Create, respond to and expire matches.

    The clock is injectable so expiry behaviour can be tested without
    sleeping.
    """

    def __init__(
        self,
        repository: MatchRepository,
        directory: UserDirectory,
        scorer: CompatibilityScorer,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.scorer = scorer
        self.expiry_days = expiry_days
        self.clock = clock

    async def create(
        self,
        initiator_id: uuid.UUID,
        target_id: uuid.UUID,
        message: str | None = None,
    ) -> Match:
        """Create a pending match between ``initiator_id`` and ``target_id``.

        Raises
        ------
        SelfMatchError
            If both ids are the same.
        UserNotFound
            If either user does not exist.
        DuplicateMatchError
            If the pair already has a match, in any status.
        """
        user_a_id, user_b_id = canonical_pair(initiator_id, target_id)
        log = logger.bind(initiator=str(initiator_id), target=str(target_id))

        existing = await self.repository.find_by_pair(user_a_id, user_b_id)
        if existing is not None:
            log.info("match_create_duplicate", match_id=str(existing.id), status=existing.status)
            raise DuplicateMatchError(
                "A match already exists for this pair.",
                match_id=str(existing.id),
                status=existing.status,
            )

        initiator = await self.directory.get_profile(initiator_id)
        target = await self.directory.get_profile(target_id)

        result: ScoreResult = self.scorer.score(initiator, target)
        now = self.clock()

        match = Match(
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            initiated_by=initiator_id,
            compatibility_score=result.total,
            status="pending",
            breakdown=result.breakdown,
            common_courses=result.common_courses,
            match_reason=result.reason,
            message=message,
            created_at=now,
            expires_at=now + timedelta(days=self.expiry_days),
        )
        match = await self.repository.insert_canonical(match)

        log.info(
            "match_created",
            match_id=str(match.id),
            compatibility_score=result.total,
            degraded=result.degraded,
        )
        return match

    async def accept(self, match_id: uuid.UUID, user_id: uuid.UUID) -> Match:
        return await self._respond(match_id, user_id, "accepted")

    async def reject(self, match_id: uuid.UUID, user_id: uuid.UUID) -> Match:
        return await self._respond(match_id, user_id, "rejected")

    async def expire_sweep(self, now: datetime | None = None) -> int:
        """Expire every pending match past its expiry.  Idempotent."""
        now = now or self.clock()
        count = await self.repository.bulk_expire(now)
        logger.info("expire_sweep_complete", expired=count, swept_at=now.isoformat())
        return count

    # ── Private helpers ─────────────────────────────────────────────

    async def _respond(self, match_id: uuid.UUID, user_id: uuid.UUID, status: str) -> Match:
        log = logger.bind(match_id=str(match_id), user_id=str(user_id), status=status)

        match = await self.repository.get(match_id)
        if match is None:
            raise MatchNotFound(f"Match {match_id} not found.", match_id=str(match_id))

        if not includes_user(match, user_id):
            log.warning("match_transition_not_participant")
            raise UnauthorizedTransition(
                "Only participants can respond to this match.",
                match_id=str(match_id),
            )

        if match.status != "pending":
            log.warning("match_transition_not_pending", current=match.status)
            raise UnauthorizedTransition(
                f"Match is already {match.status}.",
                match_id=str(match_id),
                current_status=match.status,
            )

        now = self.clock()
        if is_expired(match, now):
            log.warning("match_transition_expired")
            raise UnauthorizedTransition(
                "Match request has expired.",
                match_id=str(match_id),
                current_status="expired",
            )

        updated = await self.repository.update_status(match_id, status, now)
        if not updated:
            # Lost a race against the other participant or the sweeper.
            log.warning("match_transition_conflict")
            raise UnauthorizedTransition(
                "Match is no longer pending.",
                match_id=str(match_id),
            )

        log.info("match_transition_complete")
        return await self.repository.get(match_id)

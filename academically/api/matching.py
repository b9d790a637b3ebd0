"""
AcademicAlly — Matching API

Endpoints for partner suggestions, pairwise compatibility, match requests
and responses, match history, statistics, and partner ratings.

Domain errors raised by ``MatchingService`` are translated to HTTP responses
by the ``MatchingError`` handler registered in ``academically.main``.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from academically.database import get_db
from academically.schemas.match import (
    MatchRead,
    MatchRequestCreate,
    MatchRespond,
    MatchStats,
    PagedMatches,
    RankedCandidate,
    RatingCreate,
    RatingResult,
    ScoreResult,
)
from academically.services.matching_service import MatchingService
from academically.services.notification_service import get_event_publisher

logger = structlog.get_logger("academically.api.matching")

router = APIRouter()


def get_matching_service(db: AsyncSession = Depends(get_db)) -> MatchingService:
    return MatchingService(db, publisher=get_event_publisher())


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/suggestions: Find compatible study partners
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/suggestions",
    response_model=list[RankedCandidate],
    summary="Suggest compatible study partners",
)
async def find_matches(
    user_id: uuid.UUID,
    limit: Optional[int] = Query(None, ge=1, description="Max suggestions to return"),
    university: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    major: Optional[str] = Query(None),
    courses: Optional[list[str]] = Query(None),
    min_reputation: Optional[float] = Query(None),
    service: MatchingService = Depends(get_matching_service),
) -> list[RankedCandidate]:
    """Rank active, verified students by compatibility with ``user_id``.

    Students already paired with the requester (in any status) and students
    on either side of a block are never suggested.
    """
    filters = {
        key: value
        for key, value in {
            "university": university,
            "year": year,
            "major": major,
            "courses": courses,
            "min_reputation": min_reputation,
        }.items()
        if value is not None
    }
    return await service.find_matches(user_id, filters=filters, limit=limit)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/compatibility/{partner_id}: Pairwise compatibility
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/compatibility/{partner_id}",
    response_model=ScoreResult,
    summary="Compatibility breakdown for a pair of students",
)
async def get_compatibility(
    user_id: uuid.UUID,
    partner_id: uuid.UUID,
    service: MatchingService = Depends(get_matching_service),
) -> ScoreResult:
    return await service.get_compatibility(user_id, partner_id)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/requests: Send a match request
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/requests",
    response_model=MatchRead,
    status_code=status.HTTP_201_CREATED,
    summary="Send a study-partner request",
)
async def create_match_request(
    user_id: uuid.UUID,
    payload: MatchRequestCreate,
    service: MatchingService = Depends(get_matching_service),
) -> MatchRead:
    """Create a pending match initiated by ``user_id``.

    Fails with 409 if the pair already has a match in any status, including
    one created concurrently by the other student.
    """
    logger.info("create_match_request", user_id=str(user_id), target_id=str(payload.target_id))
    return await service.create_match_request(user_id, payload.target_id, payload.message)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/requests/{match_id}/respond: Accept or decline
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/requests/{match_id}/respond",
    response_model=MatchRead,
    summary="Accept or decline a pending match",
)
async def respond_to_match(
    user_id: uuid.UUID,
    match_id: uuid.UUID,
    payload: MatchRespond,
    service: MatchingService = Depends(get_matching_service),
) -> MatchRead:
    return await service.respond_to_match(match_id, user_id, payload.action)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/matches: Paged match history
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/matches",
    response_model=PagedMatches,
    summary="List a student's matches",
)
async def list_matches(
    user_id: uuid.UUID,
    match_status: Optional[Literal["pending", "accepted", "rejected", "expired"]] = Query(
        None, alias="status"
    ),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["created_at", "compatibility_score", "expires_at"] = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    service: MatchingService = Depends(get_matching_service),
) -> PagedMatches:
    return await service.list_matches(
        user_id,
        status=match_status,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get(
    "/{user_id}/matches/{match_id}",
    response_model=MatchRead,
    summary="Get one of a student's matches",
)
async def get_match(
    user_id: uuid.UUID,
    match_id: uuid.UUID,
    service: MatchingService = Depends(get_matching_service),
) -> MatchRead:
    return await service.get_match(match_id, user_id)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/stats: Match statistics
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/stats",
    response_model=MatchStats,
    summary="Match statistics for a student",
)
async def get_match_stats(
    user_id: uuid.UUID,
    service: MatchingService = Depends(get_matching_service),
) -> MatchStats:
    return await service.get_match_stats(user_id)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/ratings: Rate a study partner
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/ratings",
    response_model=RatingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Rate a study partner",
)
async def rate_partner(
    user_id: uuid.UUID,
    payload: RatingCreate,
    service: MatchingService = Depends(get_matching_service),
) -> RatingResult:
    """Record a 1–5 rating for ``partner_id`` and update their reputation."""
    return await service.rate_partner(
        user_id,
        payload.partner_id,
        payload.rating,
        match_id=payload.match_id,
        feedback=payload.feedback,
    )

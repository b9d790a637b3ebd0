"""
AcademicAlly — Candidate retrieval.

Builds the candidate pool for a match-finding request: everyone active and
verified who matches the requester's filters, minus the requester and anyone
on either side of a block.  The pool is over-fetched (``factor × limit``) so
that thresholding downstream still leaves ``limit`` good results.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from academically.errors import ValidationError
from academically.schemas.match import MatchFilters
from academically.schemas.profile import UserProfile
from academically.services.directory_service import UserDirectory

logger = structlog.get_logger("academically.candidate_service")

DEFAULT_OVERFETCH_FACTOR: int = 3


def parse_filters(filters: MatchFilters | dict[str, Any] | None) -> MatchFilters:
    """Coerce caller-supplied filters, raising ``ValidationError`` when they
    are malformed."""
    if filters is None:
        return MatchFilters()
    if isinstance(filters, MatchFilters):
        return filters
    try:
        return MatchFilters.model_validate(filters)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid match filters.",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ],
        ) from exc


class CandidateRetriever:
    """Queries the user directory for a requester's candidate pool."""

    def __init__(
        self,
        directory: UserDirectory,
        overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
    ) -> None:
        self.directory = directory
        self.overfetch_factor = overfetch_factor

    async def retrieve(
        self,
        requester_id: uuid.UUID,
        filters: MatchFilters | dict[str, Any] | None,
        limit: int,
    ) -> tuple[UserProfile, list[UserProfile]]:
        """Return the requester's profile and its candidate pool.

        Raises
        ------
        UserNotFound
            If the requester does not exist.
        ValidationError
            If ``filters`` or ``limit`` are malformed.
        """
        if limit < 1:
            raise ValidationError("limit must be at least 1.", limit=limit)
        parsed = parse_filters(filters)

        requester = await self.directory.get_profile(requester_id)

        exclude: set[uuid.UUID] = {requester.id}
        exclude |= requester.blocked_user_ids
        exclude |= requester.blocked_by_ids

        fetch_count = limit * self.overfetch_factor
        candidates = await self.directory.query_profiles(parsed, exclude, fetch_count)

        logger.info(
            "candidates_retrieved",
            requester_id=str(requester_id),
            excluded=len(exclude),
            fetch_count=fetch_count,
            retrieved=len(candidates),
            filters=parsed.model_dump(exclude_none=True),
        )
        return requester, candidates

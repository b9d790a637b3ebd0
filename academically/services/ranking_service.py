"""
AcademicAlly — Ranking and de-duplication of scored candidates.

Turns the scorer's output into the suggestion list returned to a requester:

  1. Drop candidates below the minimum compatibility threshold.
  2. Drop candidates that already share a Match with the requester
     (any status).
  3. Sort by total score descending; ties broken by candidate id ascending
     so results are reproducible.
  4. Truncate to ``limit``.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog

from academically.schemas.match import RankedCandidate, ScoreResult
from academically.schemas.profile import UserProfile

logger = structlog.get_logger("academically.ranking_service")

DEFAULT_MIN_COMPATIBILITY: float = 0.3


def rank_candidates(
    scored: Iterable[tuple[UserProfile, ScoreResult]],
    existing_partner_ids: set[uuid.UUID] | frozenset[uuid.UUID],
    limit: int,
    threshold: float = DEFAULT_MIN_COMPATIBILITY,
) -> list[RankedCandidate]:
    """Filter, order and truncate scored candidates.

    Parameters
    ----------
    scored:
        ``(candidate, score_result)`` pairs in any order.
    existing_partner_ids:
        Ids of users the requester already has a Match with.
    limit:
        Maximum number of candidates returned.
    threshold:
        Minimum ``total`` score a candidate needs to be suggested.
    """
    kept: list[tuple[UserProfile, ScoreResult]] = []
    below_threshold = 0
    already_paired = 0

    for candidate, result in scored:
        if result.total < threshold:
            below_threshold += 1
            continue
        if candidate.id in existing_partner_ids:
            already_paired += 1
            continue
        kept.append((candidate, result))

    kept.sort(key=lambda pair: (-pair[1].total, str(pair[0].id)))

    ranked = [
        RankedCandidate(
            candidate=candidate,
            score=result.total,
            breakdown=result.breakdown,
            common_courses=result.common_courses,
            reason=result.reason,
        )
        for candidate, result in kept[: max(limit, 0)]
    ]

    logger.debug(
        "candidates_ranked",
        kept=len(kept),
        returned=len(ranked),
        below_threshold=below_threshold,
        already_paired=already_paired,
        threshold=threshold,
    )
    return ranked

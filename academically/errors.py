"""
AcademicAlly — Matching engine exceptions.

Services raise these; the HTTP layer maps them to status codes through a
single exception handler registered in ``academically.main``.
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for every recoverable matching-engine error."""

    status_code: int = 400
    code: str = "matching_error"

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class UserNotFound(MatchingError):
    status_code = 404
    code = "user_not_found"


class MatchNotFound(MatchingError):
    status_code = 404
    code = "match_not_found"


class SelfMatchError(MatchingError):
    status_code = 400
    code = "self_match"


class DuplicateMatchError(MatchingError):
    """A Match already exists for the canonical pair."""

    status_code = 409
    code = "duplicate_match"


class UnauthorizedTransition(MatchingError):
    """Wrong participant, or the match is not in a state that allows it."""

    status_code = 403
    code = "unauthorized_transition"


class UserNotInMatchError(MatchingError):
    status_code = 403
    code = "user_not_in_match"


class ValidationError(MatchingError):
    """Malformed filter or request input."""

    status_code = 422
    code = "validation_error"

"""
AcademicAlly — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from academically.models.user import User, UserBlock, UserCourse
from academically.models.match import MATCH_STATUSES, Match, PartnerRating

__all__ = [
    "User",
    "UserCourse",
    "UserBlock",
    "Match",
    "PartnerRating",
    "MATCH_STATUSES",
]

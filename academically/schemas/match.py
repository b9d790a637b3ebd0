from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from academically.schemas.profile import UserProfile

MatchStatus = Literal["pending", "accepted", "rejected", "expired"]


class ScoreResult(BaseModel):
    total: float = Field(ge=0.0, le=1.0)
    breakdown: dict[str, float] = {}
    common_courses: list[str] = []
    reason: str = ""
    degraded: bool = False


class RankedCandidate(BaseModel):
    candidate: UserProfile
    score: float
    breakdown: dict[str, float]
    common_courses: list[str] = []
    reason: str


class MatchFilters(BaseModel):
    university: Optional[str] = Field(None, min_length=1, max_length=100)
    year: Optional[str] = Field(None, min_length=1, max_length=20)
    major: Optional[str] = Field(None, min_length=1, max_length=100)
    courses: Optional[list[str]] = Field(None, max_length=20)
    min_reputation: Optional[float] = Field(None, ge=0.0, le=5.0)

    model_config = {"extra": "forbid"}


class MatchRequestCreate(BaseModel):
    target_id: UUID
    message: Optional[str] = Field(None, max_length=500)


class MatchRespond(BaseModel):
    action: Literal["accept", "decline"]


class MatchRead(BaseModel):
    match_id: UUID
    user_a_id: UUID
    user_b_id: UUID
    other_user_id: Optional[UUID] = None
    initiated_by: UUID
    compatibility_score: float
    status: MatchStatus
    breakdown: dict[str, float] = {}
    common_courses: list[str] = []
    match_reason: str
    message: Optional[str] = None
    created_at: datetime
    responded_at: Optional[datetime] = None
    expires_at: datetime
    is_expired: bool = False
    age_in_days: int = 0


class PagedMatches(BaseModel):
    matches: list[MatchRead]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class MatchStats(BaseModel):
    by_status: dict[str, int]
    total: int
    sent: int
    received: int
    avg_compatibility: float


class RatingCreate(BaseModel):
    partner_id: UUID
    rating: int = Field(ge=1, le=5)
    match_id: Optional[UUID] = None
    feedback: Optional[str] = Field(None, max_length=1000)


class RatingResult(BaseModel):
    rating: int
    new_reputation: float
    ratings_count: int

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


class StudyPreferences(BaseModel):
    """Optional study habits.  ``None`` always means "not set"."""

    study_intensity: Optional[int] = Field(None, ge=1, le=5)
    preferred_group_size: Optional[int] = Field(None, ge=1, le=4)
    study_environment: Optional[str] = None
    study_methods: Optional[list[str]] = None
    study_location: Optional[Literal["online", "in_person", "hybrid"]] = None
    academic_goals: Optional[list[str]] = None

    model_config = {"frozen": True, "extra": "ignore"}


class Location(BaseModel):
    campus: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    model_config = {"frozen": True}


class UserProfile(BaseModel):
    """Read-only view of a directory user as consumed by the matching engine."""

    id: UUID
    display_name: str = ""
    university: Optional[str] = None
    major: Optional[str] = None
    year: Optional[str] = None
    courses: frozenset[str] = frozenset()
    preferences: Optional[StudyPreferences] = None
    availability: Optional[dict[str, list[str]]] = None
    location: Optional[Location] = None
    reputation: float = Field(5.0, ge=0.0, le=5.0)
    blocked_user_ids: frozenset[UUID] = frozenset()
    blocked_by_ids: frozenset[UUID] = frozenset()

    model_config = {"frozen": True}

    @field_validator("courses", mode="before")
    @classmethod
    def _normalise_courses(cls, v):
        if v is None:
            return frozenset()
        return frozenset(str(c).strip().upper() for c in v if str(c).strip())

    @field_validator("availability", mode="before")
    @classmethod
    def _normalise_weekdays(cls, v):
        if not v:
            return None
        return {str(day).lower(): slots for day, slots in v.items()}

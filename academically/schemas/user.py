from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional

from academically.schemas.profile import Location, StudyPreferences


class UserCreate(BaseModel):
    email: str
    display_name: str = Field(min_length=1, max_length=50)
    university: str = Field(min_length=1, max_length=100)
    year: str
    major: str = Field(min_length=1, max_length=100)
    courses: list[str] = []
    study_preferences: Optional[StudyPreferences] = None
    availability: Optional[dict[str, list[str]]] = None
    location: Optional[Location] = None
    verified: bool = False


class UserResponse(BaseModel):
    id: UUID
    email: str
    display_name: str
    university: str
    year: str
    major: str
    course_codes: list[str] = []
    reputation: float
    ratings_count: int
    is_active: bool
    verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BlockCreate(BaseModel):
    blocked_user_id: UUID
    reason: Optional[str] = Field(None, max_length=200)


class BlockedUser(BaseModel):
    user_id: UUID
    reason: Optional[str] = None
    blocked_at: datetime

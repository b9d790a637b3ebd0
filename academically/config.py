"""
AcademicAlly — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.

Scoring weights are exposed as an immutable ``ScoringWeights`` value which is
handed to the compatibility scorer at construction time.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ScoringWeights:
    """Per-factor weights for the compatibility score.

    The defaults sum to 1.0 so that a pair scoring 1.0 on every factor
    reaches a total of 1.0.
    """

    course_overlap: float = 0.40
    study_style: float = 0.20
    availability: float = 0.15
    location: float = 0.15
    goals: float = 0.10

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


class Settings(BaseSettings):
    """Central configuration for the AcademicAlly matching engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Compatibility scoring weights
    # ------------------------------------------------------------------ #
    COURSE_OVERLAP_WEIGHT: float = 0.40
    STUDY_STYLE_WEIGHT: float = 0.20
    AVAILABILITY_WEIGHT: float = 0.15
    LOCATION_WEIGHT: float = 0.15
    GOALS_WEIGHT: float = 0.10

    # ------------------------------------------------------------------ #
    # Candidate retrieval & ranking
    # ------------------------------------------------------------------ #
    MIN_COMPATIBILITY: float = 0.3
    CANDIDATE_OVERFETCH_FACTOR: int = 3
    DEFAULT_MATCH_LIMIT: int = 20
    MAX_MATCH_LIMIT: int = 50

    # ------------------------------------------------------------------ #
    # Match lifecycle
    # ------------------------------------------------------------------ #
    MATCH_EXPIRY_DAYS: int = 7
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: float = 3600.0

    # ------------------------------------------------------------------ #
    # Match event notifications
    # ------------------------------------------------------------------ #
    NOTIFICATION_WEBHOOK_URL: str = ""
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def scoring_weights(self) -> ScoringWeights:
        return ScoringWeights(
            course_overlap=self.COURSE_OVERLAP_WEIGHT,
            study_style=self.STUDY_STYLE_WEIGHT,
            availability=self.AVAILABILITY_WEIGHT,
            location=self.LOCATION_WEIGHT,
            goals=self.GOALS_WEIGHT,
        )

    @field_validator(
        "COURSE_OVERLAP_WEIGHT",
        "STUDY_STYLE_WEIGHT",
        "AVAILABILITY_WEIGHT",
        "LOCATION_WEIGHT",
        "GOALS_WEIGHT",
        "MIN_COMPATIBILITY",
    )
    @classmethod
    def _must_be_between_0_and_1(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Value must be between 0 and 1, got {v}")
        return v

    @field_validator("CANDIDATE_OVERFETCH_FACTOR", "MATCH_EXPIRY_DAYS")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime::

        from academically.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]

"""
AcademicAlly — Multi-factor study-partner compatibility scorer.

Scores an ordered pair of user profiles on five factors, each in [0, 1]:

  1. Course overlap   : Jaccard of course sets + bonus for several shared courses
  2. Study style      : intensity, group size, environment, study methods
  3. Availability     : shared time slots on shared weekdays
  4. Location         : online preference, then campus / city / state proximity
  5. Academic goals   : Jaccard of goal tags

  total = Σ weight_i × subscore_i   (rounded to 2 dp)

Missing data on either side maps to a neutral 0.5 rather than a penalty.  The
scorer is a pure function of its inputs and its (immutable) weights, so it is
safe to call concurrently for many candidate pairs.
"""

from __future__ import annotations

import structlog

from academically.config import ScoringWeights
from academically.schemas.match import ScoreResult
from academically.schemas.profile import WEEKDAYS, Location, StudyPreferences, UserProfile

logger = structlog.get_logger("academically.compatibility_service")

NEUTRAL_SCORE: float = 0.5
DEGRADED_REASON = "Unable to calculate compatibility"
FALLBACK_REASON = "Potential study compatibility"


class CompatibilityScorer:
    """Weighted five-factor compatibility between two students.

    Weights are injected at construction so alternate weighting schemes can
    be exercised side by side without touching global state.
    """

    # ── Study-style scale widths (max |Δ| that still maps to 0) ─────
    INTENSITY_RANGE: float = 4.0      # intensity is 1-5
    GROUP_SIZE_RANGE: float = 3.0     # group size is 1-4
    ENVIRONMENT_MISMATCH: float = 0.3

    # ── Course bonus ────────────────────────────────────────────────
    COURSE_BONUS_MIN_SHARED: int = 2
    COURSE_BONUS_CAP: float = 0.3

    # ── Location tiers ──────────────────────────────────────────────
    LOCATION_BOTH_ONLINE: float = 1.0
    LOCATION_ONE_ONLINE: float = 0.6
    LOCATION_SAME_CAMPUS: float = 1.0
    LOCATION_SAME_CITY: float = 0.8
    LOCATION_SAME_STATE: float = 0.4
    LOCATION_ELSEWHERE: float = 0.2

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self.weights = weights or ScoringWeights()

    # ── Public API ──────────────────────────────────────────────────

    def score(self, a: UserProfile, b: UserProfile) -> ScoreResult:
        """Compute the compatibility of ``a`` with ``b``.

        Parameters
        ----------
        a, b : UserProfile
            The requester and the candidate.  The total is symmetric in
            ``a`` and ``b``; only the ordering of ``common_courses`` in the
            result is not.

        Returns
        -------
        ScoreResult
            ``total``, per-factor ``breakdown``, ``common_courses`` and a
            human-readable ``reason``.  If any factor fails on malformed
            data the result is a zero score flagged ``degraded``.
        """
        try:
            prefs_a = a.preferences
            prefs_b = b.preferences

            breakdown = {
                "course_overlap": self.course_overlap(a.courses, b.courses),
                "study_style": self.study_style(prefs_a, prefs_b),
                "availability": self.availability_overlap(a.availability, b.availability),
                "location": self.location_compatibility(
                    a.location, b.location, prefs_a, prefs_b
                ),
                "goals": self.goals_alignment(
                    prefs_a.academic_goals if prefs_a else None,
                    prefs_b.academic_goals if prefs_b else None,
                ),
            }

            w = self.weights
            total = (
                breakdown["course_overlap"] * w.course_overlap
                + breakdown["study_style"] * w.study_style
                + breakdown["availability"] * w.availability
                + breakdown["location"] * w.location
                + breakdown["goals"] * w.goals
            )
            total = round(max(0.0, min(1.0, total)), 2)

            common_courses = sorted(a.courses & b.courses)
            reason = self.match_reason(breakdown, common_courses)
        except Exception as exc:
            logger.warning(
                "compatibility_score_degraded",
                user_a=str(a.id),
                user_b=str(b.id),
                error=str(exc),
            )
            return ScoreResult(
                total=0.0,
                breakdown={},
                common_courses=[],
                reason=DEGRADED_REASON,
                degraded=True,
            )

        return ScoreResult(
            total=total,
            breakdown={k: round(v, 4) for k, v in breakdown.items()},
            common_courses=common_courses,
            reason=reason,
        )

    # ── Factor 1: courses ───────────────────────────────────────────

    def course_overlap(self, courses_a: frozenset[str], courses_b: frozenset[str]) -> float:
        """Jaccard similarity plus a bonus of ``min(|common|/3, 0.3)`` once at
        least two courses are shared, capped at 1.  Zero if either is empty."""
        if not courses_a or not courses_b:
            return 0.0

        common = courses_a & courses_b
        jaccard = len(common) / len(courses_a | courses_b)

        bonus = 0.0
        if len(common) >= self.COURSE_BONUS_MIN_SHARED:
            bonus = min(len(common) / 3, self.COURSE_BONUS_CAP)

        return min(jaccard + bonus, 1.0)

    # ── Factor 2: study style ───────────────────────────────────────

    def study_style(
        self,
        prefs_a: StudyPreferences | None,
        prefs_b: StudyPreferences | None,
    ) -> float:
        """Average of whichever study-style factors both students have set.

        Each factor maps to [0, 1]; exact match is 1.  Returns the neutral
        0.5 when either side has no preferences or nothing is comparable.
        """
        if prefs_a is None or prefs_b is None:
            return NEUTRAL_SCORE

        factors: list[float] = []

        if prefs_a.study_intensity is not None and prefs_b.study_intensity is not None:
            diff = abs(prefs_a.study_intensity - prefs_b.study_intensity)
            factors.append(max(0.0, 1.0 - diff / self.INTENSITY_RANGE))

        if prefs_a.preferred_group_size is not None and prefs_b.preferred_group_size is not None:
            diff = abs(prefs_a.preferred_group_size - prefs_b.preferred_group_size)
            factors.append(max(0.0, 1.0 - diff / self.GROUP_SIZE_RANGE))

        if prefs_a.study_environment and prefs_b.study_environment:
            same = prefs_a.study_environment.lower() == prefs_b.study_environment.lower()
            factors.append(1.0 if same else self.ENVIRONMENT_MISMATCH)

        if prefs_a.study_methods and prefs_b.study_methods:
            factors.append(_jaccard(prefs_a.study_methods, prefs_b.study_methods))

        if not factors:
            return NEUTRAL_SCORE
        return sum(factors) / len(factors)

    # ── Factor 3: availability ──────────────────────────────────────

    def availability_overlap(
        self,
        avail_a: dict[str, list[str]] | None,
        avail_b: dict[str, list[str]] | None,
    ) -> float:
        """Shared slots over possible slots, across weekdays both have set.

        A weekday contributes ``max(len_a, len_b)`` possible slots.  Neutral
        0.5 if either student has no availability; 0 if they share no day.
        """
        if not avail_a or not avail_b:
            return NEUTRAL_SCORE

        total_overlap = 0
        total_possible = 0
        for day in WEEKDAYS:
            slots_a = avail_a.get(day)
            slots_b = avail_b.get(day)
            if not slots_a or not slots_b:
                continue
            total_overlap += len(set(slots_a) & set(slots_b))
            total_possible += max(len(set(slots_a)), len(set(slots_b)))

        if total_possible == 0:
            return 0.0
        return total_overlap / total_possible

    # ── Factor 4: location ──────────────────────────────────────────

    def location_compatibility(
        self,
        loc_a: Location | None,
        loc_b: Location | None,
        prefs_a: StudyPreferences | None,
        prefs_b: StudyPreferences | None,
    ) -> float:
        online_a = prefs_a is not None and prefs_a.study_location == "online"
        online_b = prefs_b is not None and prefs_b.study_location == "online"

        # Physical location is irrelevant when both study online.
        if online_a and online_b:
            return self.LOCATION_BOTH_ONLINE
        if online_a != online_b:
            return self.LOCATION_ONE_ONLINE

        if loc_a is None or loc_b is None:
            return NEUTRAL_SCORE

        if _same(loc_a.campus, loc_b.campus):
            return self.LOCATION_SAME_CAMPUS
        if _same(loc_a.city, loc_b.city):
            return self.LOCATION_SAME_CITY
        if _same(loc_a.state, loc_b.state):
            return self.LOCATION_SAME_STATE
        return self.LOCATION_ELSEWHERE

    # ── Factor 5: goals ─────────────────────────────────────────────

    def goals_alignment(
        self,
        goals_a: list[str] | None,
        goals_b: list[str] | None,
    ) -> float:
        if not goals_a or not goals_b:
            return NEUTRAL_SCORE
        return _jaccard(goals_a, goals_b)

    # ── Explanation ─────────────────────────────────────────────────

    def match_reason(self, breakdown: dict[str, float], common_courses: list[str]) -> str:
        """Pick up to two phrases, in priority order courses, study style,
        availability, location."""
        reasons: list[str] = []

        course = breakdown.get("course_overlap", 0.0)
        if course > 0.7:
            reasons.append(f"{len(common_courses)} courses in common")
        elif course > 0.4:
            reasons.append("Some shared courses")

        style = breakdown.get("study_style", 0.0)
        if style > 0.8:
            reasons.append("Very compatible study styles")
        elif style > 0.6:
            reasons.append("Similar study preferences")

        availability = breakdown.get("availability", 0.0)
        if availability > 0.7:
            reasons.append("Great schedule compatibility")
        elif availability > 0.5:
            reasons.append("Some overlapping availability")

        if breakdown.get("location", 0.0) > 0.8:
            reasons.append("Same location/campus")

        if not reasons:
            return FALLBACK_REASON
        return " and ".join(reasons[:2])


# ── Module helpers ──────────────────────────────────────────────────

def _jaccard(items_a, items_b) -> float:
    set_a = {str(i).strip().lower() for i in items_a}
    set_b = {str(i).strip().lower() for i in items_b}
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def _same(value_a: str | None, value_b: str | None) -> bool:
    if not value_a or not value_b:
        return False
    return value_a.strip().lower() == value_b.strip().lower()

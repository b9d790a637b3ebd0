"""Unit tests for CompatibilityScorer: factor scores, totals and reasons."""
import random
import uuid
from unittest.mock import patch

import pytest

from academically.config import ScoringWeights
from academically.schemas.profile import Location, StudyPreferences
from academically.services.compatibility_service import (
    DEGRADED_REASON,
    FALLBACK_REASON,
    NEUTRAL_SCORE,
    CompatibilityScorer,
)


@pytest.fixture
def scorer():
    return CompatibilityScorer()


class TestCourseOverlap:

    def test_one_shared_course_gets_no_bonus(self, scorer):
        """{CS101, MATH201} vs {CS101, PHYS100}: 1 shared of 3 -> 0.33."""
        result = scorer.course_overlap(
            frozenset({"CS101", "MATH201"}), frozenset({"CS101", "PHYS100"})
        )
        assert result == pytest.approx(1 / 3)

    def test_two_shared_courses_add_capped_bonus(self, scorer):
        # Jaccard 2/3 + min(2/3, 0.3)
        result = scorer.course_overlap(
            frozenset({"CS101", "MATH201", "PHYS100"}), frozenset({"CS101", "MATH201"})
        )
        assert result == pytest.approx(2 / 3 + 0.3)

    def test_identical_sets_capped_at_one(self, scorer):
        courses = frozenset({"CS101", "MATH201", "PHYS100"})
        assert scorer.course_overlap(courses, courses) == 1.0

    def test_empty_side_scores_zero(self, scorer):
        assert scorer.course_overlap(frozenset(), frozenset({"CS101"})) == 0.0
        assert scorer.course_overlap(frozenset({"CS101"}), frozenset()) == 0.0

    def test_disjoint_sets_score_zero(self, scorer):
        assert scorer.course_overlap(frozenset({"CS101"}), frozenset({"BIO110"})) == 0.0


class TestStudyStyle:

    def test_missing_preferences_are_neutral(self, scorer):
        prefs = StudyPreferences(study_intensity=3)
        assert scorer.study_style(None, prefs) == NEUTRAL_SCORE
        assert scorer.study_style(prefs, None) == NEUTRAL_SCORE

    def test_nothing_comparable_is_neutral(self, scorer):
        a = StudyPreferences(study_intensity=3)
        b = StudyPreferences(preferred_group_size=2)
        assert scorer.study_style(a, b) == NEUTRAL_SCORE

    def test_identical_preferences_score_one(self, scorer):
        prefs = StudyPreferences(
            study_intensity=4,
            preferred_group_size=2,
            study_environment="quiet",
            study_methods=["flashcards"],
        )
        assert scorer.study_style(prefs, prefs) == 1.0

    def test_opposite_intensity_scores_zero(self, scorer):
        a = StudyPreferences(study_intensity=1)
        b = StudyPreferences(study_intensity=5)
        assert scorer.study_style(a, b) == 0.0

    def test_environment_mismatch(self, scorer):
        a = StudyPreferences(study_environment="quiet")
        b = StudyPreferences(study_environment="Collaborative")
        assert scorer.study_style(a, b) == pytest.approx(0.3)

    def test_factors_are_averaged(self, scorer):
        # group size |2-3| / 3 -> 0.667; methods Jaccard 1/3
        a = StudyPreferences(preferred_group_size=2, study_methods=["flashcards", "reading"])
        b = StudyPreferences(preferred_group_size=3, study_methods=["Flashcards", "videos"])
        expected = ((1 - 1 / 3) + (1 / 3)) / 2
        assert scorer.study_style(a, b) == pytest.approx(expected)


class TestAvailability:

    def test_missing_availability_is_neutral(self, scorer):
        assert scorer.availability_overlap(None, {"monday": ["morning"]}) == NEUTRAL_SCORE
        assert scorer.availability_overlap({"monday": ["morning"]}, {}) == NEUTRAL_SCORE

    def test_no_common_weekday_scores_zero(self, scorer):
        a = {"monday": ["morning"]}
        b = {"tuesday": ["morning"]}
        assert scorer.availability_overlap(a, b) == 0.0

    def test_partial_overlap_uses_larger_day(self, scorer):
        a = {"monday": ["morning", "evening"], "friday": ["afternoon"]}
        b = {"monday": ["evening"], "friday": ["afternoon"]}
        # monday 1 of max(2, 1); friday 1 of 1 -> 2 / 3
        assert scorer.availability_overlap(a, b) == pytest.approx(2 / 3)

    def test_full_overlap_scores_one(self, scorer):
        avail = {"saturday": ["morning", "afternoon"]}
        assert scorer.availability_overlap(avail, avail) == 1.0


class TestLocation:

    def test_both_online(self, scorer):
        prefs = StudyPreferences(study_location="online")
        assert scorer.location_compatibility(None, None, prefs, prefs) == 1.0

    def test_one_online(self, scorer):
        online = StudyPreferences(study_location="online")
        in_person = StudyPreferences(study_location="in_person")
        loc = Location(campus="Main")
        assert scorer.location_compatibility(loc, loc, online, in_person) == pytest.approx(0.6)

    def test_missing_location_is_neutral(self, scorer):
        assert scorer.location_compatibility(None, Location(city="Austin"), None, None) == NEUTRAL_SCORE

    @pytest.mark.parametrize(
        "loc_b, expected",
        [
            (Location(campus="main", city="Springfield", state="IL"), 1.0),
            (Location(campus="North", city="Springfield", state="IL"), 0.8),
            (Location(campus="North", city="Chicago", state="IL"), 0.4),
            (Location(campus="Central", city="Austin", state="TX"), 0.2),
        ],
    )
    def test_proximity_tiers(self, scorer, loc_b, expected):
        loc_a = Location(campus="Main", city="Springfield", state="IL")
        assert scorer.location_compatibility(loc_a, loc_b, None, None) == pytest.approx(expected)


class TestGoals:

    def test_missing_goals_are_neutral(self, scorer):
        assert scorer.goals_alignment(None, ["pass_exams"]) == NEUTRAL_SCORE

    def test_goals_jaccard(self, scorer):
        result = scorer.goals_alignment(["pass_exams"], ["pass_exams", "deep_understanding"])
        assert result == pytest.approx(0.5)


class TestScore:

    def test_defaults_only_course_signal(self, scorer, make_profile):
        """Same single course, everything else unset -> 0.4 + 0.6 x 0.5."""
        a = make_profile(courses=["CS101"])
        b = make_profile(courses=["cs101 "])
        result = scorer.score(a, b)

        assert result.total == pytest.approx(0.7)
        assert result.breakdown == {
            "course_overlap": 1.0,
            "study_style": 0.5,
            "availability": 0.5,
            "location": 0.5,
            "goals": 0.5,
        }
        assert result.common_courses == ["CS101"]
        assert result.degraded is False

    def test_total_is_rounded_and_bounded(self, scorer, make_profile):
        prefs = StudyPreferences(
            study_intensity=3,
            preferred_group_size=2,
            study_environment="quiet",
            study_methods=["flashcards"],
            study_location="online",
            academic_goals=["pass_exams"],
        )
        a = make_profile(
            courses=["CS101", "MATH201", "PHYS100"],
            preferences=prefs,
            availability={"monday": ["evening"]},
        )
        b = make_profile(
            courses=["CS101", "MATH201", "PHYS100"],
            preferences=prefs,
            availability={"Monday": ["evening"]},
        )
        result = scorer.score(a, b)

        assert result.total == 1.0
        assert result.common_courses == ["CS101", "MATH201", "PHYS100"]
        assert result.reason == "3 courses in common and Very compatible study styles"

    def test_symmetric_over_random_profiles(self, scorer, make_profile):
        rng = random.Random(1234)
        courses = ["CS101", "CS201", "MATH201", "PHYS100", "BIO110", "ECON101"]
        days = ["monday", "tuesday", "wednesday", "friday", "sunday"]
        slots = ["morning", "afternoon", "evening"]

        def random_profile():
            prefs = None
            if rng.random() < 0.8:
                prefs = StudyPreferences(
                    study_intensity=rng.choice([None, 1, 2, 3, 4, 5]),
                    preferred_group_size=rng.choice([None, 1, 2, 3, 4]),
                    study_environment=rng.choice([None, "quiet", "collaborative"]),
                    study_methods=rng.sample(["flashcards", "reading", "videos"], rng.randint(0, 3)),
                    study_location=rng.choice([None, "online", "in_person", "hybrid"]),
                    academic_goals=rng.sample(["pass_exams", "top_grades", "deep"], rng.randint(0, 3)),
                )
            availability = {
                day: rng.sample(slots, rng.randint(1, 3))
                for day in rng.sample(days, rng.randint(0, 3))
            }
            location = None
            if rng.random() < 0.7:
                location = Location(
                    campus=rng.choice([None, "Main", "North"]),
                    city=rng.choice([None, "Springfield", "Austin"]),
                    state=rng.choice([None, "IL", "TX"]),
                )
            return make_profile(
                courses=rng.sample(courses, rng.randint(0, 4)),
                preferences=prefs,
                availability=availability,
                location=location,
            )

        for _ in range(200):
            a, b = random_profile(), random_profile()
            forward = scorer.score(a, b)
            backward = scorer.score(b, a)
            assert forward.total == backward.total
            assert 0.0 <= forward.total <= 1.0

    def test_injected_weights(self, make_profile):
        scorer = CompatibilityScorer(
            ScoringWeights(
                course_overlap=1.0, study_style=0.0, availability=0.0, location=0.0, goals=0.0
            )
        )
        a = make_profile(courses=["CS101", "MATH201"])
        b = make_profile(courses=["CS101", "PHYS100"])
        assert scorer.score(a, b).total == pytest.approx(0.33)

    def test_failure_degrades_to_zero(self, scorer, make_profile):
        a, b = make_profile(), make_profile()
        with patch.object(scorer, "study_style", side_effect=TypeError("bad document")):
            result = scorer.score(a, b)

        assert result.degraded is True
        assert result.total == 0.0
        assert result.breakdown == {}
        assert result.reason == DEGRADED_REASON


class TestMatchReason:

    def test_fallback_reason(self, scorer):
        breakdown = {"course_overlap": 0.1, "study_style": 0.5, "availability": 0.5, "location": 0.5}
        assert scorer.match_reason(breakdown, []) == FALLBACK_REASON

    def test_at_most_two_phrases(self, scorer):
        breakdown = {
            "course_overlap": 0.5,
            "study_style": 0.7,
            "availability": 0.9,
            "location": 1.0,
        }
        assert scorer.match_reason(breakdown, ["CS101"]) == (
            "Some shared courses and Similar study preferences"
        )

    def test_schedule_and_location(self, scorer):
        breakdown = {"course_overlap": 0.0, "study_style": 0.0, "availability": 0.6, "location": 0.9}
        assert scorer.match_reason(breakdown, []) == (
            "Some overlapping availability and Same location/campus"
        )

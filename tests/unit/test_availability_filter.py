"""Tests for the Availability Filter and session matching types."""

import pytest

from app.core.matching.filter import AvailabilityFilter, rank_sessions
from app.core.matching.types import (
    MatchCriteria,
    SessionRecord,
    RecommendationResult,
    SessionStatus,
    parse_age_range,
)
from app.core.registration.context import ConversationContext
from app.core.registration.schedule import DaySelection, TimeOfDay

ORG_ID = "6f1d2c8e-1b7a-4a52-9a55-2f4b1d9c0e11"


@pytest.fixture
def availability_filter():
    return AvailabilityFilter(afternoon_end_hour=17, max_results=3)


def criteria(**overrides) -> MatchCriteria:
    values = {"organization_id": ORG_ID, "child_age": 5}
    values.update(overrides)
    return MatchCriteria(**values)


class TestParseAgeRange:
    """Test age range parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("[4,6)", (4, 6)),
            ("[4,5]", (4, 6)),
            ("(3,6)", (4, 6)),
            (" [ 7 , 10 ) ", (7, 10)),
            ("[6,6)", (None, None)),
            ("4-6", (None, None)),
            ("", (None, None)),
            (None, (None, None)),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_age_range(value) == expected


class TestSessionRecord:
    """Test SessionRecord properties."""

    def test_half_open_age_range(self, make_session):
        session = make_session("s-1")
        assert session.accepts_age(4)
        assert session.accepts_age(5)
        assert not session.accepts_age(6)
        assert not session.accepts_age(3)

    def test_unknown_age_range_never_accepts(self, make_session):
        session = make_session("s-1", min_age=None, max_age=None)
        assert not session.accepts_age(5)

    def test_availability(self, make_session):
        assert make_session("s-1").is_available
        assert not make_session("s-2", enrolled_count=10).is_available
        assert make_session("s-2", enrolled_count=10).is_full
        assert not make_session("s-3", status=SessionStatus.CANCELLED).is_available
        assert make_session("s-4", enrolled_count=12).spots_remaining == 0

    def test_cache_round_trip(self, make_session):
        session = make_session("s-1", average_rating=4.25, review_count=3)
        assert SessionRecord.from_cache_dict(session.to_cache_dict()) == session


class TestMatchCriteria:
    """Test MatchCriteria.from_context."""

    def test_requires_age(self):
        context = ConversationContext(conversation_id="c", organization_id=ORG_ID)
        with pytest.raises(ValueError):
            MatchCriteria.from_context(context)

    def test_preferred_time_sets_bucket(self):
        context = ConversationContext(
            conversation_id="c",
            organization_id=ORG_ID,
            child_age=5,
            preferred_time="16:00",
        )
        assert MatchCriteria.from_context(context).time_of_day == TimeOfDay.AFTERNOON

    def test_explicit_time_of_day_wins(self):
        context = ConversationContext(
            conversation_id="c",
            organization_id=ORG_ID,
            child_age=5,
            preferred_time="16:00",
            preferred_time_of_day=TimeOfDay.MORNING,
        )
        assert MatchCriteria.from_context(context).time_of_day == TimeOfDay.MORNING

    def test_specificity(self):
        assert not criteria().is_specific
        assert not criteria(days=DaySelection.any_day(), time_of_day=TimeOfDay.ANY).is_specific
        assert criteria(days=DaySelection.of([1])).is_specific
        assert criteria(program_keyword="swim").is_specific


class TestAvailabilityFilter:
    """Test filtering and ranking."""

    def test_filters_by_age(self, availability_filter, make_session):
        sessions = [
            make_session("fits"),
            make_session("too-old", min_age=7, max_age=10, age_range="[7,10)"),
            make_session("upper-bound", min_age=2, max_age=5, age_range="[2,5)"),
        ]
        result = availability_filter.filter(sessions, criteria())
        assert [s.session_id for s in result] == ["fits"]

    def test_excludes_full_and_cancelled(self, availability_filter, make_session):
        sessions = [
            make_session("full", enrolled_count=10),
            make_session("cancelled", status=SessionStatus.CANCELLED),
            make_session("status-full", status=SessionStatus.FULL, enrolled_count=3),
            make_session("open"),
        ]
        result = availability_filter.filter(sessions, criteria())
        assert [s.session_id for s in result] == ["open"]

    def test_tenant_scope(self, availability_filter, make_session):
        sessions = [make_session("other", organization_id="someone-else")]
        assert availability_filter.filter(sessions, criteria()) == []

    def test_day_and_time_filters(self, availability_filter, make_session):
        sessions = [
            make_session("sat-morning"),
            make_session("sat-afternoon", start_time="14:00"),
            make_session("mon-morning", day_of_week=1),
            make_session("sat-evening", start_time="17:00"),
        ]
        result = availability_filter.filter(
            sessions,
            criteria(days=DaySelection.of([0, 6]), time_of_day=TimeOfDay.MORNING),
        )
        assert [s.session_id for s in result] == ["sat-morning"]

    def test_evening_boundary(self, availability_filter, make_session):
        sessions = [make_session("five-pm", start_time="17:00")]
        assert availability_filter.filter(
            sessions, criteria(time_of_day=TimeOfDay.EVENING)
        )
        assert not availability_filter.filter(
            sessions, criteria(time_of_day=TimeOfDay.AFTERNOON)
        )

    def test_unparseable_start_time_excluded_by_time_filter(self, availability_filter, make_session):
        sessions = [make_session("odd", start_time="TBD")]
        assert availability_filter.filter(sessions, criteria()) == sessions
        assert availability_filter.filter(sessions, criteria(time_of_day=TimeOfDay.MORNING)) == []

    def test_program_keyword_is_case_insensitive(self, availability_filter, make_session):
        sessions = [
            make_session("soccer"),
            make_session("swim", program_name="Splash Swim"),
        ]
        result = availability_filter.filter(sessions, criteria(program_keyword="SWIM"))
        assert [s.session_id for s in result] == ["swim"]

    def test_any_day_matches_all(self, availability_filter, make_session):
        sessions = [make_session(f"d{d}", day_of_week=d) for d in range(3)]
        result = availability_filter.filter(
            sessions, criteria(days=DaySelection.any_day()), limit=10
        )
        assert len(result) == 3

    def test_results_are_capped(self, availability_filter, make_session):
        sessions = [make_session(f"s{i}") for i in range(5)]
        assert len(availability_filter.filter(sessions, criteria())) == 3


class TestRanking:
    """Test rank_sessions ordering."""

    def test_spots_then_rating_then_inventory_order(self, make_session):
        sessions = [
            make_session("few-spots", enrolled_count=8),
            make_session("unrated", coach_rating=None),
            make_session("rated-low", coach_rating=3.0),
            make_session("rated-high", coach_rating=4.9),
            make_session("rated-high-later", coach_rating=4.9),
        ]
        ranked = [s.session_id for s in rank_sessions(sessions)]
        assert ranked == ["rated-high", "rated-high-later", "rated-low", "unrated", "few-spots"]


class TestRecommendationResult:
    """Test display projection."""

    def test_projection(self, make_session):
        session = make_session("s-1", coach_name=None, average_rating=4.333, review_count=3)
        result = RecommendationResult.from_session(session).to_dict()
        assert result["ageRange"] == "Ages 4-5"
        assert result["coachName"] == "TBD"
        assert result["dayName"] == "Saturday"
        assert result["formattedTime"] == "9:00 AM"
        assert result["spotsRemaining"] == 6
        assert result["averageRating"] == 4.3
        assert result["startDate"] == "2026-11-07"

"""
Availability filter.

Pure filtering and ranking of candidate sessions against match criteria.
"""

import logging
from typing import Iterable, Optional

from app.config import settings
from app.core.matching.types import MatchCriteria, SessionRecord
from app.core.registration.schedule import DEFAULT_AFTERNOON_END_HOUR

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECOMMENDATIONS = 3


class AvailabilityFilter:
    """
    Filters candidate sessions for a child and a schedule preference.

    A session passes when all of these hold:
    - it is active and has at least one open spot
    - it belongs to the requesting organization
    - the child's age is inside its half-open age range
    - it falls on a preferred day, at the preferred time of day, and its
      program name contains the requested keyword (each only when given)

    Results are ordered by spots remaining, then coach rating (unrated
    last), then inventory order.
    """

    def __init__(
        self,
        afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
        max_results: int = DEFAULT_MAX_RECOMMENDATIONS,
    ):
        self.afternoon_end_hour = afternoon_end_hour
        self.max_results = max_results

    def filter(
        self,
        sessions: Iterable[SessionRecord],
        criteria: MatchCriteria,
        limit: Optional[int] = None,
    ) -> list[SessionRecord]:
        """Return the matching sessions, best first.

        Args:
            sessions: Candidate sessions in inventory order
            criteria: Constraints for this lookup
            limit: Maximum results (defaults to max_results)

        Returns:
            Ranked, truncated list of matching sessions
        """
        matches = [s for s in sessions if self.matches(s, criteria)]
        ranked = rank_sessions(matches)
        return ranked[: limit if limit is not None else self.max_results]

    def matches(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        return self.is_eligible(session, criteria) and self.matches_schedule(session, criteria)

    def is_eligible(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        """Availability, tenant scope and age."""
        return (
            session.is_available
            and session.organization_id == criteria.organization_id
            and session.accepts_age(criteria.child_age)
        )

    def matches_schedule(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        """Day, time of day and program keyword."""
        return (
            self.matches_days(session, criteria)
            and self.matches_time_of_day(session, criteria)
            and self.matches_program(session, criteria)
        )

    def matches_days(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        if not criteria.has_day_filter:
            return True
        return criteria.days.contains(session.day_of_week)

    def matches_time_of_day(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        if not criteria.has_time_filter:
            return True
        bucket = session.time_of_day(self.afternoon_end_hour)
        if bucket is None:
            logger.debug(f"Session {session.session_id} has unparseable start time {session.start_time!r}")
            return False
        return bucket == criteria.time_of_day

    def matches_program(self, session: SessionRecord, criteria: MatchCriteria) -> bool:
        if not criteria.program_keyword:
            return True
        return criteria.program_keyword.lower() in session.program_name.lower()


def rank_sessions(sessions: Iterable[SessionRecord]) -> list[SessionRecord]:
    """Sort by spots remaining desc, then coach rating desc with unrated last.

    sorted() is stable, so ties keep their inventory order.
    """
    return sorted(
        sessions,
        key=lambda s: (
            -s.spots_remaining,
            s.coach_rating is None,
            -(s.coach_rating or 0.0),
        ),
    )


# Singleton
_filter: Optional[AvailabilityFilter] = None


def get_availability_filter() -> AvailabilityFilter:
    """Get singleton AvailabilityFilter configured from settings."""
    global _filter
    if _filter is None:
        _filter = AvailabilityFilter(
            afternoon_end_hour=settings.afternoon_end_hour,
            max_results=settings.max_recommendations,
        )
    return _filter

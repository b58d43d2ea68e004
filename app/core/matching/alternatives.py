"""
Alternative finder.

Runs when a specific request matched nothing. Reports the sessions the
parent was asking for and why they fail, then relaxes one constraint at a
time to suggest nearby options.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from app.config import settings
from app.core.matching.filter import AvailabilityFilter
from app.core.matching.types import (
    MatchCriteria,
    RecommendationResult,
    SessionRecord,
    SessionStatus,
)
from app.core.registration.schedule import (
    DEFAULT_AFTERNOON_END_HOUR,
    adjacent_days,
    parse_clock,
)

logger = logging.getLogger(__name__)


class SessionIssue(str, Enum):
    """Why a requested session cannot be offered."""

    FULL = "full"
    WRONG_AGE = "wrong_age"
    CANCELLED = "cancelled"


class AlternativeStrategy(str, Enum):
    """Which constraint was relaxed to find an alternative."""

    ADJACENT_DAY = "adjacent_day"
    DIFFERENT_TIME = "different_time"
    DIFFERENT_LOCATION = "different_location"
    DIFFERENT_AGE_GROUP = "different_age_group"


STRATEGY_SCORES: dict[AlternativeStrategy, int] = {
    AlternativeStrategy.ADJACENT_DAY: 90,
    AlternativeStrategy.DIFFERENT_TIME: 85,
    AlternativeStrategy.DIFFERENT_LOCATION: 80,
    AlternativeStrategy.DIFFERENT_AGE_GROUP: 50,
}

DEFAULT_MAX_ALTERNATIVES = 5
DEFAULT_MIN_BEFORE_WAITLIST = 2


@dataclass(frozen=True)
class RequestedSession:
    """A session matching the request that cannot be offered."""

    session: SessionRecord
    issue: SessionIssue

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": RecommendationResult.from_session(self.session).to_dict(),
            "issue": self.issue.value,
        }


@dataclass(frozen=True)
class Alternative:
    """A suggested session and how close it is to the request."""

    session: SessionRecord
    score: int
    strategy: AlternativeStrategy

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": RecommendationResult.from_session(self.session).to_dict(),
            "score": self.score,
            "strategy": self.strategy.value,
        }


@dataclass
class AlternativeResult:
    """Requested sessions with their issues, ranked alternatives, waitlist flag."""

    requested: list[RequestedSession] = field(default_factory=list)
    alternatives: list[Alternative] = field(default_factory=list)
    recommend_waitlist: bool = False

    @property
    def has_alternatives(self) -> bool:
        return bool(self.alternatives)

    def issues(self) -> set[SessionIssue]:
        return {r.issue for r in self.requested}

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestedSessions": [r.to_dict() for r in self.requested],
            "alternatives": [a.to_dict() for a in self.alternatives],
            "recommendWaitlist": self.recommend_waitlist,
        }


class AlternativeFinder:
    """
    Suggests sessions close to a request that matched nothing.

    With requested sessions to anchor on (they match the schedule but are
    full, cancelled or the wrong age), every eligible session is scored
    against each anchor:
    - same location and start time, one day earlier or later: 90
    - same location and day, different start time: 85
    - same day and start time, different location: 80
    - same program in an age bracket that fits, when the anchor's age was
      the problem: 50
    Without anchors, the criteria stand in for strategies 1 and 2 (next
    days in the same time bucket, same days outside the bucket).

    A session keeps its best score. Alternatives always pass tenant scope,
    availability and age, and keep the requested program keyword.
    """

    def __init__(
        self,
        afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
        max_alternatives: int = DEFAULT_MAX_ALTERNATIVES,
        min_before_waitlist: int = DEFAULT_MIN_BEFORE_WAITLIST,
    ):
        self._filter = AvailabilityFilter(afternoon_end_hour=afternoon_end_hour)
        self.max_alternatives = max_alternatives
        self.min_before_waitlist = min_before_waitlist

    def find(
        self,
        sessions: Iterable[SessionRecord],
        criteria: MatchCriteria,
    ) -> AlternativeResult:
        """Find requested-session issues and ranked alternatives.

        Args:
            sessions: Candidate sessions in inventory order
            criteria: The request that matched nothing

        Returns:
            AlternativeResult
        """
        candidates = [s for s in sessions if s.organization_id == criteria.organization_id]
        order: dict[str, int] = {}
        for index, session in enumerate(candidates):
            order.setdefault(session.session_id, index)

        requested = self.find_requested(candidates, criteria)
        requested_ids = {r.session.session_id for r in requested}
        eligible = [
            s for s in candidates
            if s.session_id not in requested_ids
            and self._filter.is_eligible(s, criteria)
            and self._filter.matches_program(s, criteria)
        ]

        best: dict[str, Alternative] = {}
        if requested:
            for anchor in requested:
                for candidate in eligible:
                    strategy = self._relax_anchor(anchor.session, candidate)
                    if strategy is not None:
                        self._keep_best(best, candidate, strategy)

            wrong_age = [r.session for r in requested if r.issue == SessionIssue.WRONG_AGE]
            if wrong_age:
                for candidate in candidates:
                    if (
                        candidate.session_id not in requested_ids
                        and self._filter.is_eligible(candidate, criteria)
                        and self._same_program(candidate, criteria, wrong_age)
                    ):
                        self._keep_best(best, candidate, AlternativeStrategy.DIFFERENT_AGE_GROUP)
        else:
            for candidate in eligible:
                strategy = self._relax_criteria(candidate, criteria)
                if strategy is not None:
                    self._keep_best(best, candidate, strategy)

        ranked = sorted(
            best.values(),
            key=lambda a: (-a.score, -a.session.spots_remaining, order[a.session.session_id]),
        )[: self.max_alternatives]

        result = AlternativeResult(
            requested=requested,
            alternatives=ranked,
            recommend_waitlist=len(ranked) < self.min_before_waitlist,
        )
        logger.info(
            f"Alternatives for organization {criteria.organization_id}: "
            f"{len(requested)} requested unavailable, {len(ranked)} suggested, "
            f"waitlist={result.recommend_waitlist}"
        )
        return result

    def find_requested(
        self,
        candidates: Iterable[SessionRecord],
        criteria: MatchCriteria,
    ) -> list[RequestedSession]:
        """Sessions matching the schedule and program that cannot be offered."""
        requested = []
        for session in candidates:
            if session.organization_id != criteria.organization_id:
                continue
            if not self._filter.matches_schedule(session, criteria):
                continue
            issue = self.issue_for(session, criteria.child_age)
            if issue is not None:
                requested.append(RequestedSession(session=session, issue=issue))
        return requested

    @staticmethod
    def issue_for(session: SessionRecord, child_age: int) -> Optional[SessionIssue]:
        """The first blocking issue, or None if the session can be offered."""
        if not session.accepts_age(child_age):
            return SessionIssue.WRONG_AGE
        if session.status == SessionStatus.CANCELLED:
            return SessionIssue.CANCELLED
        if session.is_full:
            return SessionIssue.FULL
        return None

    def _relax_anchor(
        self,
        anchor: SessionRecord,
        candidate: SessionRecord,
    ) -> Optional[AlternativeStrategy]:
        if candidate.session_id == anchor.session_id:
            return None

        anchor_time = parse_clock(anchor.start_time)
        candidate_time = parse_clock(candidate.start_time)
        same_time = anchor_time is not None and anchor_time == candidate_time
        same_location = (
            anchor.location_key is not None
            and anchor.location_key == candidate.location_key
        )
        same_day = anchor.day_of_week == candidate.day_of_week

        if same_location and same_time and candidate.day_of_week in adjacent_days(anchor.day_of_week):
            return AlternativeStrategy.ADJACENT_DAY
        if same_location and same_day and candidate_time is not None and not same_time:
            return AlternativeStrategy.DIFFERENT_TIME
        if (
            same_day
            and same_time
            and anchor.location_key is not None
            and candidate.location_key is not None
            and not same_location
        ):
            return AlternativeStrategy.DIFFERENT_LOCATION
        return None

    def _relax_criteria(
        self,
        candidate: SessionRecord,
        criteria: MatchCriteria,
    ) -> Optional[AlternativeStrategy]:
        in_days = self._filter.matches_days(candidate, criteria)
        in_bucket = self._filter.matches_time_of_day(candidate, criteria)

        if criteria.has_day_filter and not in_days and in_bucket:
            neighbours = {n for day in criteria.days.days for n in adjacent_days(day)}
            if candidate.day_of_week in neighbours:
                return AlternativeStrategy.ADJACENT_DAY

        if (
            criteria.has_time_filter
            and in_days
            and not in_bucket
            and candidate.start_hour is not None
        ):
            return AlternativeStrategy.DIFFERENT_TIME
        return None

    @staticmethod
    def _same_program(
        candidate: SessionRecord,
        criteria: MatchCriteria,
        anchors: list[SessionRecord],
    ) -> bool:
        name = candidate.program_name.lower()
        if criteria.program_keyword:
            return criteria.program_keyword.lower() in name
        return any(anchor.program_name.lower() == name for anchor in anchors)

    @staticmethod
    def _keep_best(
        best: dict[str, Alternative],
        session: SessionRecord,
        strategy: AlternativeStrategy,
    ) -> None:
        score = STRATEGY_SCORES[strategy]
        current = best.get(session.session_id)
        if current is None or score > current.score:
            best[session.session_id] = Alternative(session=session, score=score, strategy=strategy)


# Singleton
_finder: Optional[AlternativeFinder] = None


def get_alternative_finder() -> AlternativeFinder:
    """Get singleton AlternativeFinder configured from settings."""
    global _finder
    if _finder is None:
        _finder = AlternativeFinder(
            afternoon_end_hour=settings.afternoon_end_hour,
            max_alternatives=settings.max_alternatives,
            min_before_waitlist=settings.min_alternatives_before_waitlist,
        )
    return _finder

"""Types for session matching."""

import re
from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional

from app.core.registration.context import ConversationContext
from app.core.registration.schedule import (
    DAY_NAMES,
    DEFAULT_AFTERNOON_END_HOUR,
    DaySelection,
    TimeOfDay,
    format_clock_12h,
    parse_clock,
    time_of_day_for_hour,
)

# PostgreSQL int4range text form, e.g. "[4,6)"
_AGE_RANGE_RE = re.compile(r"^\s*([\[(])\s*(\d+)\s*,\s*(\d+)\s*([\])])\s*$")


class SessionStatus(str, Enum):
    """Lifecycle status of a scheduled session."""

    ACTIVE = "active"
    FULL = "full"
    CANCELLED = "cancelled"


def parse_age_range(value: Optional[str]) -> tuple[Optional[int], Optional[int]]:
    """Parse an age range into half-open [min, max) bounds.

    Inclusive upper bounds ("[4,6]") are normalized to exclusive ones.
    Anything unparseable, or an empty range, yields (None, None) so the
    session is excluded from age-filtered results.
    """
    if not value:
        return None, None
    match = _AGE_RANGE_RE.match(value)
    if not match:
        return None, None

    lower_bracket, low, high, upper_bracket = match.groups()
    min_age = int(low) if lower_bracket == "[" else int(low) + 1
    max_age = int(high) if upper_bracket == ")" else int(high) + 1
    if min_age >= max_age:
        return None, None
    return min_age, max_age


@dataclass(frozen=True)
class SessionRecord:
    """One scheduled session with its program, location and coach joined in.

    Read-only view of the inventory. ``min_age``/``max_age`` are None when
    the program's age range is missing or malformed.
    """

    session_id: str
    organization_id: str
    day_of_week: int
    start_time: str  # "HH:MM"
    start_date: date
    capacity: int
    enrolled_count: int
    status: SessionStatus
    program_name: str
    end_date: Optional[date] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    age_range: Optional[str] = None
    program_id: Optional[str] = None
    program_description: Optional[str] = None
    duration_weeks: Optional[int] = None
    price_in_cents: int = 0
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    coach_name: Optional[str] = None
    coach_rating: Optional[float] = None
    average_rating: Optional[float] = None
    review_count: int = 0

    @property
    def spots_remaining(self) -> int:
        return max(self.capacity - self.enrolled_count, 0)

    @property
    def is_full(self) -> bool:
        return self.status == SessionStatus.FULL or self.enrolled_count >= self.capacity

    @property
    def is_available(self) -> bool:
        return self.status == SessionStatus.ACTIVE and self.enrolled_count < self.capacity

    @property
    def start_hour(self) -> Optional[int]:
        parsed = parse_clock(self.start_time)
        return parsed.hour if parsed else None

    @property
    def location_key(self) -> Optional[str]:
        """Identity used when comparing locations."""
        return self.location_id or self.location_name

    def accepts_age(self, age: int) -> bool:
        """Half-open check: [4,6) accepts 4 and 5, not 6."""
        if self.min_age is None or self.max_age is None:
            return False
        return self.min_age <= age < self.max_age

    def time_of_day(
        self,
        afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
    ) -> Optional[TimeOfDay]:
        hour = self.start_hour
        if hour is None:
            return None
        return time_of_day_for_hour(hour, afternoon_end_hour)

    def to_cache_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat() if self.end_date else None
        return data

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        data = dict(data)
        data["status"] = SessionStatus(data["status"])
        data["start_date"] = date.fromisoformat(data["start_date"])
        if data.get("end_date"):
            data["end_date"] = date.fromisoformat(data["end_date"])
        return cls(**data)


@dataclass(frozen=True)
class MatchCriteria:
    """Constraints derived from the conversation context for one lookup."""

    organization_id: str
    child_age: int
    days: Optional[DaySelection] = None
    time_of_day: Optional[TimeOfDay] = None
    program_keyword: Optional[str] = None
    preferred_time: Optional[str] = None

    @classmethod
    def from_context(
        cls,
        context: ConversationContext,
        afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
    ) -> "MatchCriteria":
        """Build criteria from the context.

        A preferred clock time stands in for the time-of-day bucket when
        no explicit time of day was given.

        Raises:
            ValueError: If the child's age is not known yet
        """
        if context.child_age is None:
            raise ValueError("Child age is required to match sessions")

        time_of_day = context.preferred_time_of_day
        if time_of_day is None and context.preferred_time:
            parsed = parse_clock(context.preferred_time)
            if parsed is not None:
                time_of_day = time_of_day_for_hour(parsed.hour, afternoon_end_hour)

        days = context.preferred_days
        if days is not None and days.is_empty:
            days = None

        return cls(
            organization_id=context.organization_id,
            child_age=context.child_age,
            days=days,
            time_of_day=time_of_day,
            program_keyword=context.preferred_program or None,
            preferred_time=context.preferred_time,
        )

    @property
    def has_day_filter(self) -> bool:
        return self.days is not None and not self.days.is_any and not self.days.is_empty

    @property
    def has_time_filter(self) -> bool:
        return self.time_of_day is not None and self.time_of_day != TimeOfDay.ANY

    @property
    def is_specific(self) -> bool:
        """Whether the parent narrowed the request at all."""
        return self.has_day_filter or self.has_time_filter or bool(self.program_keyword)


@dataclass(frozen=True)
class RecommendationResult:
    """A session projected for display. Never persisted."""

    session_id: str
    program_name: str
    program_description: Optional[str]
    age_range: Optional[str]
    price_in_cents: int
    duration_weeks: Optional[int]
    location_name: Optional[str]
    location_address: Optional[str]
    coach_name: str
    coach_rating: Optional[float]
    day_of_week: int
    day_name: str
    start_time: str
    formatted_time: str
    start_date: str
    end_date: Optional[str]
    capacity: int
    enrolled_count: int
    spots_remaining: int
    average_rating: Optional[float]
    review_count: int

    @classmethod
    def from_session(cls, session: SessionRecord) -> "RecommendationResult":
        age_range = None
        if session.min_age is not None and session.max_age is not None:
            age_range = f"Ages {session.min_age}-{session.max_age - 1}"

        return cls(
            session_id=session.session_id,
            program_name=session.program_name,
            program_description=session.program_description,
            age_range=age_range,
            price_in_cents=session.price_in_cents,
            duration_weeks=session.duration_weeks,
            location_name=session.location_name,
            location_address=session.location_address,
            coach_name=session.coach_name or "TBD",
            coach_rating=session.coach_rating,
            day_of_week=session.day_of_week,
            day_name=DAY_NAMES[session.day_of_week],
            start_time=session.start_time,
            formatted_time=format_clock_12h(session.start_time),
            start_date=session.start_date.isoformat(),
            end_date=session.end_date.isoformat() if session.end_date else None,
            capacity=session.capacity,
            enrolled_count=session.enrolled_count,
            spots_remaining=session.spots_remaining,
            average_rating=(
                round(session.average_rating, 1)
                if session.average_rating is not None else None
            ),
            review_count=session.review_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "programName": self.program_name,
            "programDescription": self.program_description,
            "ageRange": self.age_range,
            "priceInCents": self.price_in_cents,
            "durationWeeks": self.duration_weeks,
            "locationName": self.location_name,
            "locationAddress": self.location_address,
            "coachName": self.coach_name,
            "coachRating": self.coach_rating,
            "dayOfWeek": self.day_of_week,
            "dayName": self.day_name,
            "startTime": self.start_time,
            "formattedTime": self.formatted_time,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "capacity": self.capacity,
            "enrolledCount": self.enrolled_count,
            "spotsRemaining": self.spots_remaining,
            "averageRating": self.average_rating,
            "reviewCount": self.review_count,
        }

"""Schedule vocabulary shared by the conversation and matching layers."""

from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Iterable, Optional

# Day numbering follows JavaScript/PostgreSQL: Sunday=0 ... Saturday=6
DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
ALL_DAYS: frozenset[int] = frozenset(range(7))
WEEKDAYS: frozenset[int] = frozenset({1, 2, 3, 4, 5})
WEEKEND: frozenset[int] = frozenset({0, 6})

# Time-of-day buckets (24h clock, start hour of the session)
MORNING_END_HOUR = 12
DEFAULT_AFTERNOON_END_HOUR = 17


class TimeOfDay(str, Enum):
    """Coarse time-of-day preference."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANY = "any"


@dataclass(frozen=True)
class DaySelection:
    """A set of preferred weekdays.

    "Any day works" is kept as an explicit value (``is_any``) rather than
    being folded into the seven-day set, so a flexible parent can be told
    apart from one who listed every day by hand. Both match every day.
    """

    days: frozenset[int] = frozenset()
    is_any: bool = False

    @classmethod
    def any_day(cls) -> "DaySelection":
        return cls(days=ALL_DAYS, is_any=True)

    @classmethod
    def of(cls, values: Iterable[int]) -> "DaySelection":
        """Build a selection from day numbers (0-6).

        Raises:
            ValueError: If any value is not a valid day number
        """
        days = frozenset(values)
        invalid = sorted(d for d in days if d not in ALL_DAYS)
        if invalid:
            raise ValueError(f"Invalid day numbers: {invalid}")
        if days == ALL_DAYS:
            return cls.any_day()
        return cls(days=days)

    @property
    def is_empty(self) -> bool:
        return not self.days and not self.is_any

    def contains(self, day: int) -> bool:
        return self.is_any or day in self.days

    def to_list(self) -> list[int]:
        return sorted(self.days)

    def describe(self) -> str:
        """Human-readable form, e.g. "Monday and Wednesday"."""
        if self.is_any:
            return "any day"
        if self.days == WEEKDAYS:
            return "weekdays"
        if self.days == WEEKEND:
            return "weekends"
        names = [DAY_NAMES[d] for d in self.to_list()]
        if len(names) <= 1:
            return "".join(names)
        return ", ".join(names[:-1]) + " and " + names[-1]


def parse_clock(value: Optional[str]) -> Optional[time]:
    """Parse an "HH:MM" or "HH:MM:SS" string, returning None when malformed."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        return None
    try:
        return time(*(int(p) for p in parts))
    except ValueError:
        return None


def format_clock(value: time) -> str:
    """Format a time as "HH:MM"."""
    return f"{value.hour:02d}:{value.minute:02d}"


def format_clock_12h(value: str) -> str:
    """Format "HH:MM" as "h:MM AM/PM". Unparseable input is returned as-is."""
    parsed = parse_clock(value)
    if parsed is None:
        return value
    period = "AM" if parsed.hour < 12 else "PM"
    hour = parsed.hour % 12 or 12
    return f"{hour}:{parsed.minute:02d} {period}"


def time_of_day_for_hour(
    hour: int,
    afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
) -> TimeOfDay:
    """Bucket a start hour into morning, afternoon or evening."""
    if hour < MORNING_END_HOUR:
        return TimeOfDay.MORNING
    if hour < afternoon_end_hour:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


def adjacent_days(day: int) -> tuple[int, int]:
    """Previous and next weekday, wrapping around the week."""
    return (day - 1) % 7, (day + 1) % 7

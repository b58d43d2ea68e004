"""Types for fact extraction."""

from dataclasses import dataclass, field
from typing import Optional

from app.core.registration.schedule import DaySelection, TimeOfDay


@dataclass
class ExtractedFacts:
    """Facts pulled out of one parent message. Every field is optional."""

    child_name: Optional[str] = None
    child_age: Optional[int] = None
    preferred_days: Optional[DaySelection] = None
    preferred_time: Optional[str] = None          # "HH:MM"
    preferred_time_of_day: Optional[TimeOfDay] = None
    preferred_program: Optional[str] = None       # "soccer", "swim"

    def has_any(self) -> bool:
        """Check if any facts were extracted."""
        return any([
            self.child_name,
            self.child_age is not None,
            self.preferred_days is not None and not self.preferred_days.is_empty,
            self.preferred_time,
            self.preferred_time_of_day,
            self.preferred_program,
        ])

    def to_dict(self) -> dict:
        """Convert to camelCase dict, excluding empty values."""
        result = {}
        if self.child_name:
            result["childName"] = self.child_name
        if self.child_age is not None:
            result["childAge"] = self.child_age
        if self.preferred_days is not None and not self.preferred_days.is_empty:
            result["preferredDays"] = self.preferred_days.to_list()
        if self.preferred_time:
            result["preferredTime"] = self.preferred_time
        if self.preferred_time_of_day:
            result["preferredTimeOfDay"] = self.preferred_time_of_day.value
        if self.preferred_program:
            result["preferredProgram"] = self.preferred_program
        return result


@dataclass
class ExtractionResult:
    """Result of running the extractor over one message."""

    message: str = ""
    facts: ExtractedFacts = field(default_factory=ExtractedFacts)
    next_state: Optional[str] = None  # hint only, never authoritative

    # Metadata
    model: Optional[str] = None
    raw_response: str = ""
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class ExtractionRequest:
    """Prompt pair sent to the extraction model."""

    system_prompt: str
    prompt: str

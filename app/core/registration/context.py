"""
Conversation context for registration conversations.

The context is the accumulated record of what is known about one
conversation. It travels with each turn (or is loaded from the store),
is updated only through the reconciler and the flow events, and is
persisted after every turn as camelCase JSON.
"""

from dataclasses import dataclass
from typing import Any, Optional

from app.config import settings
from app.core.registration.schedule import DaySelection, TimeOfDay, parse_clock
from app.core.registration.state import ConversationState


@dataclass(frozen=True)
class SelectedSession:
    """The session a parent picked from the recommendations."""

    session_id: str
    program_name: str
    location_name: str
    day_of_week: int
    start_time: str
    price_in_cents: int

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "programName": self.program_name,
            "locationName": self.location_name,
            "dayOfWeek": self.day_of_week,
            "startTime": self.start_time,
            "priceInCents": self.price_in_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SelectedSession":
        return cls(
            session_id=str(data["sessionId"]),
            program_name=str(data.get("programName", "")),
            location_name=str(data.get("locationName", "")),
            day_of_week=int(data["dayOfWeek"]),
            start_time=str(data["startTime"]),
            price_in_cents=int(data.get("priceInCents", 0)),
        )


@dataclass(frozen=True)
class ConversationContext:
    """Everything known about one registration conversation."""

    # Identifiers (immutable)
    conversation_id: str
    organization_id: str
    family_id: Optional[str] = None

    current_state: ConversationState = ConversationState.GREETING

    # Child
    child_name: Optional[str] = None
    child_age: Optional[int] = None

    # Schedule preference
    preferred_days: Optional[DaySelection] = None
    preferred_time: Optional[str] = None  # "HH:MM"
    preferred_time_of_day: Optional[TimeOfDay] = None
    preferred_program: Optional[str] = None  # keyword, e.g. "soccer"

    selected_session: Optional[SelectedSession] = None

    @property
    def has_child_info(self) -> bool:
        return bool(self.child_name) and self.child_age is not None

    @property
    def has_schedule_preference(self) -> bool:
        """At least one schedule axis is known."""
        return (
            (self.preferred_days is not None and not self.preferred_days.is_empty)
            or self.preferred_time_of_day is not None
            or self.preferred_time is not None
        )

    @property
    def ready_for_recommendations(self) -> bool:
        return self.child_age is not None and self.has_schedule_preference

    def missing_fields(self) -> list[str]:
        """Facts still needed before recommendations can be shown."""
        missing = []
        if not self.child_name:
            missing.append("childName")
        if self.child_age is None:
            missing.append("childAge")
        if not self.has_schedule_preference:
            missing.append("schedulePreference")
        return missing

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire/storage format."""
        return {
            "conversationId": self.conversation_id,
            "organizationId": self.organization_id,
            "familyId": self.family_id,
            "currentState": self.current_state.value,
            "childName": self.child_name,
            "childAge": self.child_age,
            "preferredDays": (
                self.preferred_days.to_list() if self.preferred_days is not None else None
            ),
            "preferredDaysAny": bool(self.preferred_days and self.preferred_days.is_any),
            "preferredTime": self.preferred_time,
            "preferredTimeOfDay": (
                self.preferred_time_of_day.value if self.preferred_time_of_day else None
            ),
            "preferredProgram": self.preferred_program,
            "selectedSession": (
                self.selected_session.to_dict() if self.selected_session else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationContext":
        """Build a context from its camelCase form.

        Raises:
            ValueError: If identifiers are missing or a field has the wrong shape
        """
        try:
            conversation_id = data["conversationId"]
            organization_id = data["organizationId"]
            if not conversation_id or not organization_id:
                raise ValueError("conversationId and organizationId are required")

            days = data.get("preferredDays")
            if days is not None:
                days = (
                    DaySelection.any_day()
                    if data.get("preferredDaysAny")
                    else DaySelection.of(int(d) for d in days)
                )
                if days.is_empty:
                    days = None

            preferred_time = data.get("preferredTime")
            if preferred_time is not None and parse_clock(preferred_time) is None:
                raise ValueError(f"preferredTime must be HH:MM, got {preferred_time!r}")

            time_of_day = data.get("preferredTimeOfDay")
            selected = data.get("selectedSession")
            child_age = data.get("childAge")

            return cls(
                conversation_id=str(conversation_id),
                organization_id=str(organization_id),
                family_id=data.get("familyId"),
                current_state=ConversationState(
                    data.get("currentState") or ConversationState.GREETING.value
                ),
                child_name=data.get("childName") or None,
                child_age=_parse_child_age(child_age),
                preferred_days=days,
                preferred_time=preferred_time,
                preferred_time_of_day=TimeOfDay(time_of_day) if time_of_day else None,
                preferred_program=data.get("preferredProgram") or None,
                selected_session=SelectedSession.from_dict(selected) if selected else None,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid conversation context: {e}") from e


def _parse_child_age(value: Any) -> Optional[int]:
    """Whole-number age within the configured bounds, or None."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"childAge must be a whole number, got {value!r}")

    number = float(value)
    if not number.is_integer():
        raise ValueError(f"childAge must be a whole number, got {value!r}")

    age = int(number)
    if not settings.min_child_age <= age <= settings.max_child_age:
        raise ValueError(
            f"childAge must be between {settings.min_child_age} and "
            f"{settings.max_child_age}, got {age}"
        )
    return age

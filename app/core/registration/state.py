"""Registration conversation state machine."""

from enum import Enum
from typing import Optional, Set


class ConversationState(str, Enum):
    """States in the registration flow."""

    # Initial
    GREETING = "greeting"

    # Information gathering
    COLLECTING_CHILD_INFO = "collecting_child_info"
    COLLECTING_PREFERENCES = "collecting_preferences"

    # Matching
    SHOWING_RECOMMENDATIONS = "showing_recommendations"

    # Hand-off
    CONFIRMING_SELECTION = "confirming_selection"
    COLLECTING_PAYMENT = "collecting_payment"

    # Terminal / fault
    CONFIRMED = "confirmed"
    ERROR = "error"


# Valid state transitions. Automatic rules may cascade within one turn,
# so collection states can jump straight to showing_recommendations.
VALID_TRANSITIONS: dict[ConversationState, Set[ConversationState]] = {
    ConversationState.GREETING: {
        ConversationState.COLLECTING_CHILD_INFO,
        ConversationState.COLLECTING_PREFERENCES,
        ConversationState.SHOWING_RECOMMENDATIONS,
        ConversationState.ERROR,
    },
    ConversationState.COLLECTING_CHILD_INFO: {
        ConversationState.COLLECTING_PREFERENCES,
        ConversationState.SHOWING_RECOMMENDATIONS,
        ConversationState.ERROR,
    },
    ConversationState.COLLECTING_PREFERENCES: {
        ConversationState.SHOWING_RECOMMENDATIONS,
        ConversationState.COLLECTING_CHILD_INFO,  # go back
        ConversationState.ERROR,
    },
    ConversationState.SHOWING_RECOMMENDATIONS: {
        ConversationState.CONFIRMING_SELECTION,
        ConversationState.COLLECTING_PREFERENCES,  # go back
        ConversationState.ERROR,
    },
    ConversationState.CONFIRMING_SELECTION: {
        ConversationState.COLLECTING_PAYMENT,
        ConversationState.SHOWING_RECOMMENDATIONS,  # go back
        ConversationState.ERROR,
    },
    ConversationState.COLLECTING_PAYMENT: {
        ConversationState.CONFIRMED,
        ConversationState.CONFIRMING_SELECTION,  # go back
        ConversationState.ERROR,
    },
    ConversationState.CONFIRMED: set(),  # Terminal state
    ConversationState.ERROR: {
        ConversationState.COLLECTING_CHILD_INFO,
        ConversationState.COLLECTING_PREFERENCES,
        ConversationState.SHOWING_RECOMMENDATIONS,
    },
}

BACK_TRANSITIONS: dict[ConversationState, ConversationState] = {
    ConversationState.COLLECTING_PREFERENCES: ConversationState.COLLECTING_CHILD_INFO,
    ConversationState.SHOWING_RECOMMENDATIONS: ConversationState.COLLECTING_PREFERENCES,
    ConversationState.CONFIRMING_SELECTION: ConversationState.SHOWING_RECOMMENDATIONS,
    ConversationState.COLLECTING_PAYMENT: ConversationState.CONFIRMING_SELECTION,
}

STATE_PROGRESS: dict[ConversationState, int] = {
    ConversationState.GREETING: 0,
    ConversationState.COLLECTING_CHILD_INFO: 20,
    ConversationState.COLLECTING_PREFERENCES: 40,
    ConversationState.SHOWING_RECOMMENDATIONS: 60,
    ConversationState.CONFIRMING_SELECTION: 80,
    ConversationState.COLLECTING_PAYMENT: 90,
    ConversationState.CONFIRMED: 100,
    ConversationState.ERROR: 0,
}

QUICK_REPLIES: dict[ConversationState, list[str]] = {
    ConversationState.GREETING: [],
    ConversationState.COLLECTING_CHILD_INFO: [],
    ConversationState.COLLECTING_PREFERENCES: [
        "Weekday afternoons",
        "Weekend mornings",
        "Show me all options",
    ],
    ConversationState.SHOWING_RECOMMENDATIONS: [
        "Tell me more",
        "See other times",
        "This looks perfect",
    ],
    ConversationState.CONFIRMING_SELECTION: ["Yes, sign me up!", "Show me other options"],
    ConversationState.COLLECTING_PAYMENT: [],
    ConversationState.CONFIRMED: [],
    ConversationState.ERROR: [],
}


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    """Check if a state transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_back_state(state: ConversationState) -> Optional[ConversationState]:
    """State reached by the explicit "go back" action, if any."""
    return BACK_TRANSITIONS.get(state)


def get_progress(state: ConversationState) -> int:
    return STATE_PROGRESS.get(state, 0)


def get_quick_replies(state: ConversationState) -> list[str]:
    return list(QUICK_REPLIES.get(state, []))


def is_event_driven_state(state: ConversationState) -> bool:
    """States left only through explicit selection/confirmation/completion events."""
    return state in {
        ConversationState.CONFIRMING_SELECTION,
        ConversationState.COLLECTING_PAYMENT,
        ConversationState.CONFIRMED,
    }


def parse_state(value: Optional[str]) -> Optional[ConversationState]:
    """Parse a state name, returning None for unknown values."""
    if not value:
        return None
    try:
        return ConversationState(value)
    except ValueError:
        return None

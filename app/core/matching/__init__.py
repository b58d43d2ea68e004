"""Session matching module."""

from .types import (
    SessionStatus,
    SessionRecord,
    MatchCriteria,
    RecommendationResult,
    parse_age_range,
)
from .filter import AvailabilityFilter, get_availability_filter
from .alternatives import (
    AlternativeFinder,
    AlternativeResult,
    AlternativeStrategy,
    SessionIssue,
    get_alternative_finder,
)
from .inventory import SessionInventory, get_session_inventory

__all__ = [
    # Types
    "SessionStatus",
    "SessionRecord",
    "MatchCriteria",
    "RecommendationResult",
    "parse_age_range",
    # Filter
    "AvailabilityFilter",
    "get_availability_filter",
    # Alternatives
    "AlternativeFinder",
    "AlternativeResult",
    "AlternativeStrategy",
    "SessionIssue",
    "get_alternative_finder",
    # Inventory
    "SessionInventory",
    "get_session_inventory",
]

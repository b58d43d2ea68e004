"""Shared fixtures for unit tests."""

from datetime import date

import pytest

from app.core.matching.types import SessionRecord, SessionStatus

ORG_ID = "6f1d2c8e-1b7a-4a52-9a55-2f4b1d9c0e11"


@pytest.fixture
def make_session():
    """Factory for inventory sessions with sensible defaults.

    Defaults describe an open Saturday 9:00 soccer session for ages 4-5.
    """

    def _make(session_id: str, **overrides) -> SessionRecord:
        values = {
            "session_id": session_id,
            "organization_id": ORG_ID,
            "day_of_week": 6,
            "start_time": "09:00",
            "start_date": date(2026, 11, 7),
            "end_date": date(2027, 1, 9),
            "capacity": 10,
            "enrolled_count": 4,
            "status": SessionStatus.ACTIVE,
            "program_name": "Little Kickers Soccer",
            "min_age": 4,
            "max_age": 6,
            "age_range": "[4,6)",
            "price_in_cents": 12000,
            "location_id": "loc-north",
            "location_name": "North Field",
            "coach_name": "Coach Sam",
            "coach_rating": 4.5,
        }
        values.update(overrides)
        return SessionRecord(**values)

    return _make

"""Tests for the Session Inventory accessor."""

import pytest
from contextlib import asynccontextmanager
from datetime import date, time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from app.core.matching.inventory import SessionInventory
from app.core.matching.types import SessionStatus
from app.models.database import SessionStatusType

ORG_ID = "6f1d2c8e-1b7a-4a52-9a55-2f4b1d9c0e11"


def make_row(
    session_id="11111111-1111-1111-1111-111111111111",
    age_range="[4,6)",
    day_of_week=6,
    location=True,
    coach=True,
    average_rating=4.6667,
    review_count=3,
):
    session = SimpleNamespace(
        id=session_id,
        day_of_week=day_of_week,
        start_time=time(9, 0),
        start_date=date(2026, 11, 7),
        end_date=date(2027, 1, 9),
        capacity=10,
        enrolled_count=4,
        status=SessionStatusType.ACTIVE,
    )
    program = SimpleNamespace(
        id="prog-1",
        organization_id=ORG_ID,
        name="Little Kickers Soccer",
        description="Intro to soccer",
        age_range=age_range,
        duration_weeks=10,
        price_cents=12000,
    )
    loc = SimpleNamespace(id="loc-1", name="North Field", address="1 Park Rd") if location else None
    staff = SimpleNamespace(name="Coach Sam", rating=4.5) if coach else None
    return (session, program, loc, staff, average_rating, review_count)


def make_factory(rows=None, error=None):
    db = AsyncMock()
    if error is not None:
        db.execute.side_effect = error
    else:
        result = MagicMock()
        result.all.return_value = rows or []
        db.execute.return_value = result

    @asynccontextmanager
    async def factory():
        yield db

    return factory, db


@pytest.fixture
def cache():
    cache = AsyncMock()
    cache.get.return_value = None
    cache.set.return_value = True
    return cache


def inventory_with(factory, cache):
    return SessionInventory(
        session_factory=factory,
        cache=cache,
        today=lambda: date(2026, 10, 19),
    )


class TestListCandidateSessions:
    """Test SessionInventory.list_candidate_sessions."""

    @pytest.mark.asyncio
    async def test_maps_joined_rows(self, cache):
        factory, db = make_factory([make_row()])
        records = await inventory_with(factory, cache).list_candidate_sessions(ORG_ID)

        assert len(records) == 1
        record = records[0]
        assert record.organization_id == ORG_ID
        assert record.start_time == "09:00"
        assert record.status == SessionStatus.ACTIVE
        assert (record.min_age, record.max_age) == (4, 6)
        assert record.location_name == "North Field"
        assert record.coach_rating == 4.5
        assert record.average_rating == pytest.approx(4.6667)
        assert record.review_count == 3
        db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_joins_are_none(self, cache):
        factory, _ = make_factory(
            [make_row(location=False, coach=False, average_rating=None, review_count=None)]
        )
        record = (await inventory_with(factory, cache).list_candidate_sessions(ORG_ID))[0]
        assert record.location_name is None
        assert record.coach_name is None
        assert record.average_rating is None
        assert record.review_count == 0

    @pytest.mark.asyncio
    async def test_unparseable_age_range_kept_with_unknown_bounds(self, cache):
        factory, _ = make_factory([make_row(age_range="four to six")])
        record = (await inventory_with(factory, cache).list_candidate_sessions(ORG_ID))[0]
        assert record.min_age is None
        assert not record.accepts_age(5)

    @pytest.mark.asyncio
    async def test_unmappable_rows_are_skipped(self, cache):
        factory, _ = make_factory([
            make_row(day_of_week=9),
            make_row(session_id="22222222-2222-2222-2222-222222222222"),
        ])
        records = await inventory_with(factory, cache).list_candidate_sessions(ORG_ID)
        assert [r.session_id for r in records] == ["22222222-2222-2222-2222-222222222222"]

    @pytest.mark.asyncio
    async def test_query_failure_returns_empty(self, cache):
        factory, _ = make_factory(error=RuntimeError("connection reset"))
        records = await inventory_with(factory, cache).list_candidate_sessions(ORG_ID)
        assert records == []
        cache.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_organization_id(self, cache):
        factory, db = make_factory([make_row()])
        assert await inventory_with(factory, cache).list_candidate_sessions("not-a-uuid") == []
        db.execute.assert_not_awaited()


class TestInventoryCaching:
    """Test the Redis-backed inventory cache path."""

    @pytest.mark.asyncio
    async def test_miss_populates_cache(self, cache):
        factory, _ = make_factory([make_row()])
        await inventory_with(factory, cache).list_candidate_sessions(ORG_ID)

        cache.get.assert_awaited_once_with(ORG_ID, "2026-10-19")
        organization_id, day, payload = cache.set.await_args.args
        assert (organization_id, day) == (ORG_ID, "2026-10-19")
        assert payload[0]["program_name"] == "Little Kickers Soccer"

    @pytest.mark.asyncio
    async def test_hit_skips_database(self, cache):
        factory, db = make_factory([make_row()])
        inventory = inventory_with(factory, cache)
        first = await inventory.list_candidate_sessions(ORG_ID)

        cache.get.return_value = cache.set.await_args.args[2]
        second = await inventory.list_candidate_sessions(ORG_ID)

        assert second == first
        assert db.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_falls_back(self, cache):
        cache.get.return_value = [{"session_id": "broken"}]
        factory, db = make_factory([make_row()])
        records = await inventory_with(factory, cache).list_candidate_sessions(ORG_ID)
        assert len(records) == 1
        db.execute.assert_awaited_once()

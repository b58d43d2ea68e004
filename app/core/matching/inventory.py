"""
Session inventory accessor.

Reads the candidate sessions of one organization: sessions starting today
or later whose program belongs to the organization, joined with program,
location, coach and aggregate review rating. No availability or age
filtering happens here.
"""

import logging
import uuid
from datetime import date
from typing import Any, AsyncContextManager, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.matching.types import SessionRecord, SessionStatus, parse_age_range
from app.core.registration.schedule import format_clock
from app.infra.database import get_db_context
from app.infra.redis import InventoryCache, get_inventory_cache
from app.models.database import (
    Location,
    Program,
    ProgramSession,
    SessionReview,
    Staff,
)

logger = logging.getLogger(__name__)


SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class SessionInventory:
    """
    Read-only access to an organization's scheduled sessions.

    Results are cached briefly in Redis per organization and day. A query
    failure is logged and yields an empty list, so the conversation falls
    through to its "no matches" path instead of erroring.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        cache: Optional[InventoryCache] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """Initialize inventory accessor.

        Args:
            session_factory: Async context manager factory yielding a DB session
            cache: Inventory cache (resolved lazily from Redis if omitted)
            today: Clock override for tests
        """
        self._session_factory = session_factory or get_db_context
        self._cache = cache
        self._today = today or date.today

    async def list_candidate_sessions(self, organization_id: str) -> list[SessionRecord]:
        """List sessions an organization could offer from today on.

        Args:
            organization_id: Tenant to scope the lookup to

        Returns:
            Sessions in (day, start time) order; empty on failure
        """
        try:
            org_uuid = uuid.UUID(str(organization_id))
        except ValueError:
            logger.warning(f"Invalid organization id for inventory lookup: {organization_id!r}")
            return []

        today = self._today()
        cache = await self._get_cache()

        cached = await cache.get(str(org_uuid), today.isoformat())
        if cached is not None:
            records = self._from_cache(cached)
            if records is not None:
                logger.debug(f"Inventory cache hit for {org_uuid} ({len(records)} sessions)")
                return records

        try:
            async with self._session_factory() as db:
                rows = (await db.execute(self._build_query(org_uuid, today))).all()
        except Exception as e:
            logger.error(f"Inventory query failed for organization {org_uuid}: {e}", exc_info=True)
            return []

        records = []
        for row in rows:
            record = self._to_record(row, str(org_uuid))
            if record is not None:
                records.append(record)

        logger.info(f"Loaded {len(records)} candidate sessions for organization {org_uuid}")
        await cache.set(str(org_uuid), today.isoformat(), [r.to_cache_dict() for r in records])
        return records

    async def _get_cache(self) -> InventoryCache:
        if self._cache is not None:
            return self._cache
        return await get_inventory_cache()

    @staticmethod
    def _build_query(organization_id: uuid.UUID, today: date):
        review_stats = (
            select(
                SessionReview.session_id.label("session_id"),
                func.avg(SessionReview.overall_rating).label("average_rating"),
                func.count(SessionReview.id).label("review_count"),
            )
            .group_by(SessionReview.session_id)
            .subquery()
        )

        return (
            select(
                ProgramSession,
                Program,
                Location,
                Staff,
                review_stats.c.average_rating,
                review_stats.c.review_count,
            )
            .join(Program, ProgramSession.program_id == Program.id)
            .outerjoin(Location, ProgramSession.location_id == Location.id)
            .outerjoin(Staff, ProgramSession.coach_id == Staff.id)
            .outerjoin(review_stats, review_stats.c.session_id == ProgramSession.id)
            .where(Program.organization_id == organization_id)
            .where(ProgramSession.start_date >= today)
            .order_by(ProgramSession.day_of_week, ProgramSession.start_time, ProgramSession.id)
        )

    @staticmethod
    def _to_record(row: Any, organization_id: str) -> Optional[SessionRecord]:
        """Map one joined row. Rows that cannot be mapped are skipped."""
        session, program, location, coach, average_rating, review_count = row

        try:
            min_age, max_age = parse_age_range(program.age_range)
            if min_age is None:
                logger.warning(
                    f"Session {session.id} has no usable age range "
                    f"({program.age_range!r}); it will never match"
                )

            start_time = session.start_time
            start_time = format_clock(start_time) if hasattr(start_time, "hour") else str(start_time)

            status = session.status
            status = SessionStatus(status.value if hasattr(status, "value") else status)

            if not 0 <= int(session.day_of_week) <= 6:
                raise ValueError(f"day_of_week out of range: {session.day_of_week}")

            return SessionRecord(
                session_id=str(session.id),
                organization_id=str(program.organization_id or organization_id),
                day_of_week=int(session.day_of_week),
                start_time=start_time,
                start_date=session.start_date,
                end_date=session.end_date,
                capacity=int(session.capacity),
                enrolled_count=int(session.enrolled_count or 0),
                status=status,
                min_age=min_age,
                max_age=max_age,
                age_range=program.age_range,
                program_id=str(program.id),
                program_name=program.name,
                program_description=program.description,
                duration_weeks=program.duration_weeks,
                price_in_cents=int(program.price_cents or 0),
                location_id=str(location.id) if location else None,
                location_name=location.name if location else None,
                location_address=location.address if location else None,
                coach_name=coach.name if coach else None,
                coach_rating=float(coach.rating) if coach and coach.rating is not None else None,
                average_rating=float(average_rating) if average_rating is not None else None,
                review_count=int(review_count or 0),
            )
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Skipping unmappable session row: {e}")
            return None

    @staticmethod
    def _from_cache(data: list[dict[str, Any]]) -> Optional[list[SessionRecord]]:
        try:
            return [SessionRecord.from_cache_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable inventory cache entry: {e}")
            return None


# Singleton
_inventory: Optional[SessionInventory] = None


def get_session_inventory() -> SessionInventory:
    """Get singleton SessionInventory."""
    global _inventory
    if _inventory is None:
        _inventory = SessionInventory()
    return _inventory

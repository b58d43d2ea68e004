"""
Database Models

SQLAlchemy ORM models for the youth sports registration assistant:
the session inventory (read by the matcher) and the conversations table
(written once per turn).
"""

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, Time, Enum as SQLEnum, text
)
from sqlalchemy.dialects.postgresql import UUID, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class SessionStatusType(str, Enum):
    """Session status enumeration."""
    ACTIVE = "active"
    FULL = "full"
    CANCELLED = "cancelled"


class Organization(Base, TimestampMixin):
    """
    Organization model (Tenant).

    A club or league offering programs. Every inventory lookup and every
    conversation is scoped to one organization.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), default="America/New_York")

    programs: Mapped[List["Program"]] = relationship(
        "Program",
        back_populates="organization"
    )
    locations: Mapped[List["Location"]] = relationship(
        "Location",
        back_populates="organization"
    )


class Program(Base, TimestampMixin):
    """
    Program model.

    A kind of offering ("Mini Soccer", "Swim Basics"). ``age_range`` keeps
    PostgreSQL's int4range text form, e.g. "[4,6)".
    """

    __tablename__ = "programs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    age_range: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    duration_weeks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="programs"
    )
    sessions: Mapped[List["ProgramSession"]] = relationship(
        "ProgramSession",
        back_populates="program"
    )


class Location(Base, TimestampMixin):
    """Location model (field, pool, gym)."""

    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="locations"
    )


class Staff(Base, TimestampMixin):
    """Staff model. Coaches are referenced by sessions."""

    __tablename__ = "staff"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ProgramSession(Base, TimestampMixin):
    """
    Session model.

    One scheduled, capacity-bound offering of a program: a weekday, a
    start time and a date range at one location with one coach.
    """

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    program_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True
    )
    coach_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    enrolled_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[SessionStatusType] = mapped_column(
        SQLEnum(SessionStatusType, values_callable=lambda e: [m.value for m in e]),
        default=SessionStatusType.ACTIVE
    )

    program: Mapped["Program"] = relationship(
        "Program",
        back_populates="sessions"
    )
    location: Mapped[Optional["Location"]] = relationship("Location")
    coach: Mapped[Optional["Staff"]] = relationship("Staff")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_sessions_day_of_week"),
        CheckConstraint("capacity > 0", name="ck_sessions_capacity"),
        CheckConstraint("enrolled_count >= 0", name="ck_sessions_enrolled_count"),
        Index("ix_sessions_start_date", "start_date"),
    )


class SessionReview(Base, TimestampMixin):
    """Parent review of a session. Averaged into the session rating."""

    __tablename__ = "session_reviews"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    overall_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    coach_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    location_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Conversation(Base, TimestampMixin):
    """
    Conversation model.

    ``state`` and ``context`` are rewritten at the end of every turn;
    ``messages`` keeps the transcript (role/content pairs).
    """

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    family_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    channel: Mapped[str] = mapped_column(String(20), default="web", nullable=False)
    state: Mapped[str] = mapped_column(String(40), default="greeting", nullable=False)
    context: Mapped[dict] = mapped_column(JSON, default=dict)
    messages: Mapped[list] = mapped_column(JSON, default=list)

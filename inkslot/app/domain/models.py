from __future__ import annotations

import uuid
from datetime import UTC, date as _date, datetime, time as _time
from enum import Enum as _Enum

from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    Uuid,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .intervals import TimeInterval


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BookingStatus(_Enum):  # Values match DB labels (Postgres enum)
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(_Enum):
    PENDING = "pending"
    DEPOSIT_PAID = "deposit_paid"
    REFUNDED = "refunded"


class OfferingKind(_Enum):
    FLASH = "flash"
    SERVICE = "service"


class OfferingStatus(_Enum):
    AVAILABLE = "available"
    SOLD_OUT = "sold_out"
    DISABLED = "disabled"


# Statuses that hold a slot; the exclusion constraint covers exactly these
BLOCKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def _enum_column(enum_cls: type[_Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],  # persist lowercase labels
        native_enum=True,
    )


class Artist(Base):
    __tablename__ = "artists"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(200))
    # IANA zone name; NULL means the deployment default
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deposit_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_lead_time_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Cleanup time appended to every reservation of this artist
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stripe_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    stripe_onboarding_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cal_com_username: Mapped[str | None] = mapped_column(String(120), nullable=True)
    cal_com_event_type_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    @property
    def payment_ready(self) -> bool:
        return bool(self.stripe_onboarding_complete and self.stripe_account_id)


class WorkingHour(Base):
    __tablename__ = "working_hours"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    artist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("artists.id", ondelete="CASCADE"), index=True)
    # ISO day of week: Monday=1 .. Sunday=7
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    # Local wall-clock time in the artist's timezone
    start_time: Mapped[_time] = mapped_column(Time, nullable=False)
    end_time: Mapped[_time] = mapped_column(Time, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (CheckConstraint("day_of_week BETWEEN 1 AND 7", name="ck_working_hours_day_of_week"),)


class ArtistLeave(Base):
    __tablename__ = "artist_leaves"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    artist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("artists.id", ondelete="CASCADE"), index=True)
    date: Mapped[_date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)


class Offering(Base):
    """A flash design or a free-form service an artist sells."""

    __tablename__ = "offerings"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    artist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("artists.id", ondelete="CASCADE"), index=True)
    kind: Mapped[OfferingKind] = mapped_column(_enum_column(OfferingKind, "offering_kind"), default=OfferingKind.FLASH)
    title: Mapped[str] = mapped_column(String(200))
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OfferingStatus] = mapped_column(
        _enum_column(OfferingStatus, "offering_status"), default=OfferingStatus.AVAILABLE
    )
    stock_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_current: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Candidate start granularity for service offerings; flashes step by duration
    slot_step_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def is_sold_out(self) -> bool:
        if self.status == OfferingStatus.SOLD_OUT:
            return True
        if self.stock_limit is None:
            return False
        return int(self.stock_current or 0) >= int(self.stock_limit)


class Reservation(Base):
    __tablename__ = "reservations"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    artist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("artists.id"))
    offering_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("offerings.id"), nullable=True)
    client_email: Mapped[str] = mapped_column(String(254))
    client_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    # end_time plus the artist's buffer; the exclusion constraint compares
    # tstzrange(start_time, blocked_until)
    blocked_until: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_minutes: Mapped[int] = mapped_column(Integer)
    price_total_cents: Mapped[int] = mapped_column(Integer)
    deposit_amount_cents: Mapped[int] = mapped_column(Integer)
    deposit_percentage: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3))
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING
    )
    booking_status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus, "booking_status"), default=BookingStatus.PENDING
    )
    payment_intent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_reservations_artist_start", "artist_id", "start_time"),
        CheckConstraint("start_time < end_time", name="ck_reservations_start_before_end"),
        CheckConstraint("end_time <= blocked_until", name="ck_reservations_blocked_until"),
    )

    @property
    def blocked_interval(self) -> TimeInterval:
        return TimeInterval(self.start_time, self.blocked_until or self.end_time)


EXCLUSION_CONSTRAINT_NAME = "reservations_no_overlap"

# Storage-level guarantee: no two pending/confirmed reservations of one artist
# may overlap. Installed on PostgreSQL only; other dialects rely on the store's
# own re-check under a lock.
event.listen(
    Base.metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Reservation.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE reservations ADD CONSTRAINT {EXCLUSION_CONSTRAINT_NAME} "
        "EXCLUDE USING gist (artist_id WITH =, tstzrange(start_time, blocked_until, '[)') WITH &&) "
        "WHERE (booking_status IN ('pending'::booking_status, 'confirmed'::booking_status))"
    ).execute_if(dialect="postgresql"),
)


__all__ = [
    "Base",
    "BookingStatus",
    "PaymentStatus",
    "OfferingKind",
    "OfferingStatus",
    "Artist",
    "WorkingHour",
    "ArtistLeave",
    "Offering",
    "Reservation",
    "BLOCKING_STATUSES",
    "EXCLUSION_CONSTRAINT_NAME",
]

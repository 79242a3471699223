"""Reservation persistence contract and its SQLAlchemy implementation.

The booking engine only talks to a :class:`ReservationStore`. Stores raise
:class:`SlotConflict` when an insert would overlap a pending/confirmed
reservation of the same artist; any other storage failure propagates as is.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Any, Callable, Protocol, Sequence

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkslot.app.core.db import get_session
from inkslot.app.domain.models import (
    BLOCKING_STATUSES,
    EXCLUSION_CONSTRAINT_NAME,
    Artist,
    ArtistLeave,
    BookingStatus,
    Offering,
    OfferingKind,
    OfferingStatus,
    PaymentStatus,
    Reservation,
    WorkingHour,
)
from inkslot.app.services.errors import SlotConflict

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION_SQLSTATE = "23P01"


class ReservationStore(Protocol):
    async def get_artist(self, artist_id: uuid.UUID) -> Artist | None: ...

    async def get_offering(self, offering_id: uuid.UUID) -> Offering | None: ...

    async def list_working_hours(self, artist_id: uuid.UUID) -> list[WorkingHour]: ...

    async def list_leaves(self, artist_id: uuid.UUID, start: date, end: date) -> set[date]: ...

    async def list_blocking_reservations(
        self, artist_id: uuid.UUID, start: datetime, end: datetime
    ) -> list[Reservation]: ...

    async def get_reservation(self, reservation_id: uuid.UUID) -> Reservation | None: ...

    async def insert_reservation(self, reservation: Reservation) -> Reservation: ...

    async def cancel_if_pending(self, reservation_id: uuid.UUID) -> bool: ...

    async def attach_payment_intent(self, reservation_id: uuid.UUID, intent_id: str) -> bool: ...

    async def confirm_deposit(self, reservation_id: uuid.UUID, intent_id: str | None = None) -> bool: ...

    async def cancel_stale_pending(self, cutoff: datetime) -> list[uuid.UUID]: ...


def is_exclusion_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` comes from the reservations overlap constraint."""
    orig: Any = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == EXCLUSION_VIOLATION_SQLSTATE:
            return True
    return EXCLUSION_CONSTRAINT_NAME in str(orig or exc)


def _overlap_clause(artist_id: uuid.UUID, start: datetime, end: datetime):
    return and_(
        Reservation.artist_id == artist_id,
        Reservation.booking_status.in_(tuple(BLOCKING_STATUSES)),
        Reservation.start_time < end,
        Reservation.blocked_until > start,
    )


SessionProvider = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlReservationStore:
    """ReservationStore backed by the async SQLAlchemy session factory."""

    def __init__(self, session_provider: SessionProvider | None = None) -> None:
        self._session = session_provider or get_session

    async def get_artist(self, artist_id: uuid.UUID) -> Artist | None:
        async with self._session() as session:
            return await session.get(Artist, artist_id)

    async def get_offering(self, offering_id: uuid.UUID) -> Offering | None:
        async with self._session() as session:
            return await session.get(Offering, offering_id)

    async def list_working_hours(self, artist_id: uuid.UUID) -> list[WorkingHour]:
        async with self._session() as session:
            result = await session.execute(
                select(WorkingHour).where(WorkingHour.artist_id == artist_id).order_by(WorkingHour.id)
            )
            return list(result.scalars().all())

    async def list_leaves(self, artist_id: uuid.UUID, start: date, end: date) -> set[date]:
        async with self._session() as session:
            result = await session.execute(
                select(ArtistLeave.date).where(
                    ArtistLeave.artist_id == artist_id,
                    ArtistLeave.date >= start,
                    ArtistLeave.date <= end,
                )
            )
            return set(result.scalars().all())

    async def list_blocking_reservations(
        self, artist_id: uuid.UUID, start: datetime, end: datetime
    ) -> list[Reservation]:
        # Matching on blocked_until also catches reservations that started
        # before ``start`` and are still running at it.
        async with self._session() as session:
            result = await session.execute(
                select(Reservation)
                .where(_overlap_clause(artist_id, start, end))
                .order_by(Reservation.start_time)
            )
            return list(result.scalars().all())

    async def get_reservation(self, reservation_id: uuid.UUID) -> Reservation | None:
        async with self._session() as session:
            return await session.get(Reservation, reservation_id)

    async def insert_reservation(self, reservation: Reservation) -> Reservation:
        """Re-check overlaps and insert in one transaction.

        On PostgreSQL the exclusion constraint is the final arbiter: two
        transactions passing the re-check concurrently cannot both commit.
        """
        async with self._session() as session:
            try:
                async with session.begin():
                    existing = await session.scalar(
                        select(Reservation.id)
                        .where(
                            _overlap_clause(
                                reservation.artist_id, reservation.start_time, reservation.blocked_until
                            )
                        )
                        .limit(1)
                    )
                    if existing is not None:
                        logger.info(
                            "Overlap re-check failed for artist=%s start=%s (existing=%s)",
                            reservation.artist_id,
                            reservation.start_time,
                            existing,
                        )
                        raise SlotConflict(str(existing))
                    session.add(reservation)
                    await session.flush()
            except IntegrityError as exc:
                if is_exclusion_violation(exc):
                    logger.info("Exclusion constraint rejected reservation for artist=%s: %s", reservation.artist_id, exc.orig)
                    raise SlotConflict(EXCLUSION_CONSTRAINT_NAME) from exc
                raise
        return reservation

    async def cancel_if_pending(self, reservation_id: uuid.UUID) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.booking_status == BookingStatus.PENDING,
                )
                .values(booking_status=BookingStatus.CANCELLED)
                .returning(Reservation.id)
            )
            changed = result.first() is not None
            await session.commit()
            return changed

    async def attach_payment_intent(self, reservation_id: uuid.UUID, intent_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.booking_status == BookingStatus.PENDING,
                )
                .values(payment_intent_id=intent_id)
                .returning(Reservation.id)
            )
            changed = result.first() is not None
            await session.commit()
            return changed

    async def confirm_deposit(self, reservation_id: uuid.UUID, intent_id: str | None = None) -> bool:
        async with self._session() as session:
            values: dict[str, Any] = {
                "booking_status": BookingStatus.CONFIRMED,
                "payment_status": PaymentStatus.DEPOSIT_PAID,
            }
            if intent_id:
                values["payment_intent_id"] = intent_id
            result = await session.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.booking_status == BookingStatus.PENDING,
                )
                .values(**values)
                .returning(Reservation.offering_id)
            )
            row = result.first()
            if row is None:
                await session.rollback()
                return False
            offering_id = row[0]
            if offering_id is not None:
                await self._consume_flash_stock(session, offering_id)
            await session.commit()
            return True

    @staticmethod
    async def _consume_flash_stock(session: AsyncSession, offering_id: uuid.UUID) -> None:
        await session.execute(
            update(Offering)
            .where(Offering.id == offering_id, Offering.kind == OfferingKind.FLASH)
            .values(stock_current=Offering.stock_current + 1)
        )
        await session.execute(
            update(Offering)
            .where(
                Offering.id == offering_id,
                Offering.kind == OfferingKind.FLASH,
                Offering.stock_limit.is_not(None),
                Offering.stock_current >= Offering.stock_limit,
            )
            .values(status=OfferingStatus.SOLD_OUT)
        )

    async def cancel_stale_pending(self, cutoff: datetime) -> list[uuid.UUID]:
        async with self._session() as session:
            result = await session.execute(
                update(Reservation)
                .where(
                    Reservation.booking_status == BookingStatus.PENDING,
                    Reservation.payment_status == PaymentStatus.PENDING,
                    Reservation.created_at <= cutoff,
                )
                .values(booking_status=BookingStatus.CANCELLED)
                .returning(Reservation.id)
            )
            ids: Sequence[uuid.UUID] = result.scalars().all()
            await session.commit()
            return list(ids)


__all__ = [
    "ReservationStore",
    "SqlReservationStore",
    "is_exclusion_violation",
    "EXCLUSION_VIOLATION_SQLSTATE",
]

"""In-process ReservationStore for the test suite.

A single lock is held across the overlap re-check and the insert, standing
in for the exclusion constraint of the SQL schema.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from datetime import UTC, date, datetime
from typing import Iterable

from inkslot.app.domain.intervals import overlaps
from inkslot.app.domain.models import (
    BLOCKING_STATUSES,
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


class MemoryReservationStore:
    def __init__(
        self,
        *,
        artists: Iterable[Artist] = (),
        offerings: Iterable[Offering] = (),
        working_hours: Iterable[WorkingHour] = (),
        leaves: Iterable[ArtistLeave] = (),
        reservations: Iterable[Reservation] = (),
    ) -> None:
        self.artists: dict[uuid.UUID, Artist] = {a.id: a for a in artists}
        self.offerings: dict[uuid.UUID, Offering] = {o.id: o for o in offerings}
        self.working_hours: list[WorkingHour] = list(working_hours)
        self.leaves: list[ArtistLeave] = list(leaves)
        self.reservations: dict[uuid.UUID, Reservation] = {r.id: r for r in reservations}
        self.calls: Counter[str] = Counter()
        self._lock = asyncio.Lock()

    async def _io(self, name: str) -> None:
        # Yield once per call so concurrent requests interleave like real I/O
        self.calls[name] += 1
        await asyncio.sleep(0)

    async def get_artist(self, artist_id: uuid.UUID) -> Artist | None:
        await self._io("get_artist")
        return self.artists.get(artist_id)

    async def get_offering(self, offering_id: uuid.UUID) -> Offering | None:
        await self._io("get_offering")
        return self.offerings.get(offering_id)

    async def list_working_hours(self, artist_id: uuid.UUID) -> list[WorkingHour]:
        await self._io("list_working_hours")
        rows = [w for w in self.working_hours if w.artist_id == artist_id]
        return sorted(rows, key=lambda w: w.id or 0)

    async def list_leaves(self, artist_id: uuid.UUID, start: date, end: date) -> set[date]:
        await self._io("list_leaves")
        return {lv.date for lv in self.leaves if lv.artist_id == artist_id and start <= lv.date <= end}

    def _blocking(self, artist_id: uuid.UUID, start: datetime, end: datetime) -> list[Reservation]:
        return sorted(
            (
                r
                for r in self.reservations.values()
                if r.artist_id == artist_id
                and r.booking_status in BLOCKING_STATUSES
                and r.start_time < end
                and r.blocked_until > start
            ),
            key=lambda r: r.start_time,
        )

    async def list_blocking_reservations(
        self, artist_id: uuid.UUID, start: datetime, end: datetime
    ) -> list[Reservation]:
        await self._io("list_blocking_reservations")
        return self._blocking(artist_id, start, end)

    async def get_reservation(self, reservation_id: uuid.UUID) -> Reservation | None:
        await self._io("get_reservation")
        return self.reservations.get(reservation_id)

    async def insert_reservation(self, reservation: Reservation) -> Reservation:
        await self._io("insert_reservation")
        async with self._lock:
            # Let competing inserts queue up on the lock before re-checking
            await asyncio.sleep(0)
            candidate = reservation.blocked_interval
            for existing in self._blocking(reservation.artist_id, candidate.start, candidate.end):
                if overlaps(existing.blocked_interval, candidate):
                    raise SlotConflict(str(existing.id))
            if reservation.id is None:
                reservation.id = uuid.uuid4()
            if reservation.created_at is None:
                reservation.created_at = datetime.now(UTC)
            self.reservations[reservation.id] = reservation
        return reservation

    async def cancel_if_pending(self, reservation_id: uuid.UUID) -> bool:
        await self._io("cancel_if_pending")
        async with self._lock:
            res = self.reservations.get(reservation_id)
            if res is None or res.booking_status != BookingStatus.PENDING:
                return False
            res.booking_status = BookingStatus.CANCELLED
            return True

    async def attach_payment_intent(self, reservation_id: uuid.UUID, intent_id: str) -> bool:
        await self._io("attach_payment_intent")
        res = self.reservations.get(reservation_id)
        if res is None or res.booking_status != BookingStatus.PENDING:
            return False
        res.payment_intent_id = intent_id
        return True

    async def confirm_deposit(self, reservation_id: uuid.UUID, intent_id: str | None = None) -> bool:
        await self._io("confirm_deposit")
        async with self._lock:
            res = self.reservations.get(reservation_id)
            if res is None or res.booking_status != BookingStatus.PENDING:
                return False
            res.booking_status = BookingStatus.CONFIRMED
            res.payment_status = PaymentStatus.DEPOSIT_PAID
            if intent_id:
                res.payment_intent_id = intent_id
            offering = self.offerings.get(res.offering_id) if res.offering_id else None
            if offering is not None and offering.kind == OfferingKind.FLASH:
                offering.stock_current = int(offering.stock_current or 0) + 1
                if offering.stock_limit is not None and offering.stock_current >= offering.stock_limit:
                    offering.status = OfferingStatus.SOLD_OUT
            return True

    async def cancel_stale_pending(self, cutoff: datetime) -> list[uuid.UUID]:
        await self._io("cancel_stale_pending")
        expired: list[uuid.UUID] = []
        async with self._lock:
            for res in self.reservations.values():
                if (
                    res.booking_status == BookingStatus.PENDING
                    and res.payment_status == PaymentStatus.PENDING
                    and res.created_at is not None
                    and res.created_at <= cutoff
                ):
                    res.booking_status = BookingStatus.CANCELLED
                    expired.append(res.id)
        return expired


__all__ = ["MemoryReservationStore"]

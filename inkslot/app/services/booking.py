"""Booking write path.

``BookingEngine.create_reservation`` is the single entry point for creating
reservations. It validates, pre-checks against a fresh conflict index, then
asks the store for an authoritative insert. A storage-level conflict is
reported as ``SlotTaken``. Once the row exists a deposit PaymentIntent is
requested; if that fails the reservation stays pending and the caller
decides between retrying ``create_deposit_intent`` and ``cancel_pending``.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from inkslot.app.core.constants import DEFAULT_DEPOSIT_PERCENTAGE
from inkslot.app.domain.intervals import TimeInterval
from inkslot.app.domain.models import (
    Artist,
    BookingStatus,
    Offering,
    PaymentStatus,
    Reservation,
)
from inkslot.app.integrations.payments import PaymentGateway, PaymentIntentHandle, percent_of
from inkslot.app.services.conflicts import ConflictIndex
from inkslot.app.services.errors import (
    ArtistOrServiceNotFound,
    BookingError,
    BookingNotPending,
    InvalidInput,
    PaymentSetupFailed,
    PaymentSetupIncomplete,
    PersistenceError,
    ReservationNotFound,
    SlotConflict,
    SlotTaken,
    SlotUnavailable,
)
from inkslot.app.services.slots import (
    Clock,
    SlotGenerator,
    earliest_bookable,
    ensure_offered,
    require_aware,
    resolve_duration,
    utc_now,
    validate_duration,
)
from inkslot.app.services.working_hours import WorkingHoursResolver
from inkslot.config import get_currency, get_hold_minutes, resolve_timezone

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_NAME_LENGTH = 200
MAX_PHONE_LENGTH = 50


@dataclass(frozen=True)
class ClientContact:
    email: str
    name: str | None = None
    phone: str | None = None

    def normalized(self) -> "ClientContact":
        email = (self.email or "").strip().lower()
        if not email or not EMAIL_RE.match(email):
            raise InvalidInput("a valid email is required")
        name = (self.name or "").strip()[:MAX_NAME_LENGTH] or None
        phone = (self.phone or "").strip()[:MAX_PHONE_LENGTH] or None
        return ClientContact(email=email, name=name, phone=phone)


@dataclass(frozen=True)
class BookingRequest:
    artist_id: uuid.UUID
    offering_id: uuid.UUID
    start_time: datetime
    contact: ClientContact
    duration_minutes: int | None = None
    notes: str | None = None


@dataclass
class BookingResult:
    reservation: Reservation
    payment: PaymentIntentHandle


@dataclass
class _Checked:
    artist: Artist
    offering: Offering
    duration_minutes: int
    buffer: timedelta
    deposit: int
    deposit_percentage: int


def deposit_for(price_cents: int, percentage: int | None) -> tuple[int, int]:
    """Return ``(deposit_cents, percentage)`` for a price."""
    pct = DEFAULT_DEPOSIT_PERCENTAGE if percentage is None else int(percentage)
    if not 0 < pct <= 100:
        raise InvalidInput("deposit percentage must be between 1 and 100")
    deposit = percent_of(int(price_cents), pct)
    if deposit <= 0:
        raise InvalidInput("deposit amount must be positive")
    return deposit, pct


async def expire_stale_reservations(
    store, now: datetime, hold_minutes: int | None = None
) -> list[uuid.UUID]:
    """Cancel pending reservations whose deposit never arrived in time."""
    hold = get_hold_minutes() if hold_minutes is None else max(1, int(hold_minutes))
    expired = await store.cancel_stale_pending(now - timedelta(minutes=hold))
    if expired:
        logger.info("Expired %d stale pending reservations", len(expired))
    return expired


class BookingEngine:
    def __init__(
        self,
        store,
        payments: PaymentGateway,
        *,
        clock: Clock = utc_now,
        slots: SlotGenerator | None = None,
    ) -> None:
        self.store = store
        self.payments = payments
        self.clock = clock
        self.slots = slots or SlotGenerator(store, clock=clock)
        self._hours = WorkingHoursResolver(store)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    async def create_reservation(self, request: BookingRequest) -> BookingResult:
        now = self.clock()

        # Pure input checks first: nothing below runs for malformed requests
        if request.duration_minutes is not None:
            validate_duration(request.duration_minutes)
        start = require_aware(request.start_time, "start_time")
        if start <= now:
            raise InvalidInput("start_time must be in the future")
        contact = request.contact.normalized()

        try:
            checked = await self._precheck(request, start, now)
        except BookingError:
            raise
        except Exception as exc:
            logger.exception("Booking pre-check failed for artist=%s start=%s", request.artist_id, start)
            raise PersistenceError("could not load booking data") from exc
        artist, offering = checked.artist, checked.offering
        end = start + timedelta(minutes=checked.duration_minutes)

        reservation = Reservation(
            id=uuid.uuid4(),
            artist_id=artist.id,
            offering_id=offering.id,
            client_email=contact.email,
            client_name=contact.name,
            client_phone=contact.phone,
            start_time=start,
            end_time=end,
            blocked_until=end + checked.buffer,
            duration_minutes=checked.duration_minutes,
            price_total_cents=int(offering.price_cents),
            deposit_amount_cents=checked.deposit,
            deposit_percentage=checked.deposit_percentage,
            currency=get_currency(),
            booking_status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        try:
            reservation = await self.store.insert_reservation(reservation)
        except SlotConflict as exc:
            logger.info("Slot taken at commit artist=%s start=%s (%s)", artist.id, start, exc)
            raise SlotTaken("slot was just booked by someone else") from exc
        except BookingError:
            raise
        except Exception as exc:
            logger.exception("Reservation insert failed for artist=%s start=%s", artist.id, start)
            raise PersistenceError("could not save reservation") from exc

        logger.info("Reservation %s created (pending) artist=%s start=%s", reservation.id, artist.id, start)
        handle = await self._request_deposit_intent(reservation, artist)
        return BookingResult(reservation=reservation, payment=handle)

    async def _precheck(self, request: BookingRequest, start: datetime, now: datetime) -> _Checked:
        artist = await self.store.get_artist(request.artist_id)
        if artist is None:
            raise ArtistOrServiceNotFound("artist not found")
        offering = await self.store.get_offering(request.offering_id)
        if offering is None or offering.artist_id != artist.id:
            raise ArtistOrServiceNotFound("offering not found")
        ensure_offered(offering)

        duration_minutes = resolve_duration(offering, request.duration_minutes)
        if start < earliest_bookable(now, artist.minimum_lead_time_hours):
            raise InvalidInput("start_time is inside the artist's minimum lead time")

        deposit, pct = deposit_for(offering.price_cents, artist.deposit_percentage)
        if not artist.payment_ready:
            raise PaymentSetupIncomplete("artist has not completed payment onboarding")

        end = start + timedelta(minutes=duration_minutes)
        slot = TimeInterval(start, end)
        tz = resolve_timezone(artist.timezone)
        if not await self._hours.covers(artist.id, slot, tz):
            raise InvalidInput("requested time is outside working hours")

        index = await ConflictIndex.load(self.store, artist.id, start, end, artist.buffer_minutes)
        if index.is_blocked(slot):
            logger.info("Pre-check conflict artist=%s start=%s", artist.id, start)
            raise SlotUnavailable("slot is no longer available")
        return _Checked(
            artist=artist,
            offering=offering,
            duration_minutes=duration_minutes,
            buffer=index.buffer,
            deposit=deposit,
            deposit_percentage=pct,
        )

    # ------------------------------------------------------------------
    # payment
    # ------------------------------------------------------------------
    async def create_deposit_intent(self, reservation_id: uuid.UUID) -> PaymentIntentHandle:
        reservation = await self._get_reservation(reservation_id)
        if (
            reservation.booking_status != BookingStatus.PENDING
            or reservation.payment_status != PaymentStatus.PENDING
        ):
            raise BookingNotPending("reservation is not awaiting a deposit")
        artist = await self.store.get_artist(reservation.artist_id)
        if artist is None:
            raise ArtistOrServiceNotFound("artist not found")
        if not artist.payment_ready:
            raise PaymentSetupIncomplete("artist has not completed payment onboarding")
        return await self._request_deposit_intent(reservation, artist)

    async def _request_deposit_intent(self, reservation: Reservation, artist: Artist) -> PaymentIntentHandle:
        metadata = {
            "reservation_id": str(reservation.id),
            "artist_id": str(artist.id),
        }
        try:
            handle = await self.payments.create_payment_intent(
                amount=reservation.deposit_amount_cents,
                currency=reservation.currency,
                destination=str(artist.stripe_account_id),
                metadata=metadata,
            )
        except Exception as exc:
            logger.warning("Deposit intent failed for reservation %s: %s", reservation.id, exc)
            raise PaymentSetupFailed(
                "payment setup failed, retry or cancel the reservation", reservation_id=reservation.id
            ) from exc

        try:
            await self.store.attach_payment_intent(reservation.id, handle.intent_id)
            reservation.payment_intent_id = handle.intent_id
        except Exception:
            # The webhook identifies the reservation from intent metadata
            logger.exception("Could not record intent %s on reservation %s", handle.intent_id, reservation.id)
        return handle

    async def confirm_deposit(self, reservation_id: uuid.UUID, intent_id: str | None = None) -> bool:
        """Flip pending -> confirmed after the deposit was captured.

        Returns False when the reservation is no longer pending (already
        confirmed, cancelled by the client or by the stale sweep).
        """
        try:
            confirmed = await self.store.confirm_deposit(reservation_id, intent_id)
        except Exception as exc:
            logger.exception("Deposit confirmation failed for reservation %s", reservation_id)
            raise PersistenceError("could not confirm reservation") from exc
        if confirmed:
            logger.info("Reservation %s confirmed (intent=%s)", reservation_id, intent_id)
        else:
            logger.warning("Deposit for reservation %s arrived but it is not pending", reservation_id)
        return confirmed

    # ------------------------------------------------------------------
    # cancel / expire
    # ------------------------------------------------------------------
    async def cancel_pending(self, reservation_id: uuid.UUID) -> bool:
        """Cancel a pending reservation; a no-op success for any other status.

        Returns whether this call changed the status.
        """
        await self._get_reservation(reservation_id)
        try:
            changed = await self.store.cancel_if_pending(reservation_id)
        except Exception as exc:
            logger.exception("Cancel failed for reservation %s", reservation_id)
            raise PersistenceError("could not cancel reservation") from exc
        if changed:
            logger.info("Reservation %s cancelled (pending released)", reservation_id)
        return changed

    async def expire_stale(self, now: datetime | None = None, hold_minutes: int | None = None) -> list[uuid.UUID]:
        return await expire_stale_reservations(self.store, now or self.clock(), hold_minutes)

    async def _get_reservation(self, reservation_id: uuid.UUID) -> Reservation:
        try:
            reservation = await self.store.get_reservation(reservation_id)
        except Exception as exc:
            logger.exception("Reservation lookup failed for %s", reservation_id)
            raise PersistenceError("could not load reservation") from exc
        if reservation is None:
            raise ReservationNotFound("reservation not found")
        return reservation


__all__ = [
    "BookingEngine",
    "BookingRequest",
    "BookingResult",
    "ClientContact",
    "deposit_for",
    "expire_stale_reservations",
    "EMAIL_RE",
]

"""Booking failure taxonomy.

Every error carries a stable ``code`` for API clients and an HTTP-equivalent
``status_code``. ``retryable`` marks failures where the same request may
succeed later (collaborator or storage trouble), as opposed to conflicts
and bad input.
"""

from __future__ import annotations

import uuid


class BookingError(ValueError):
    code = "BOOKING_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str | None = None, *, reservation_id: uuid.UUID | None = None) -> None:
        super().__init__(message or self.code)
        self.reservation_id = reservation_id


class InvalidInput(BookingError):
    code = "INVALID_INPUT"
    status_code = 400


class ArtistOrServiceNotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404


class ReservationNotFound(BookingError):
    code = "RESERVATION_NOT_FOUND"
    status_code = 404


class ServiceUnavailable(BookingError):
    """Offering is sold out or disabled."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 409


class SlotUnavailable(BookingError):
    """Pre-check found an overlapping reservation."""

    code = "SLOT_UNAVAILABLE"
    status_code = 409


class SlotTaken(BookingError):
    """Another request won the slot between pre-check and insert."""

    code = "SLOT_TAKEN"
    status_code = 409


class PaymentSetupIncomplete(BookingError):
    code = "STRIPE_ONBOARDING_INCOMPLETE"
    status_code = 400


class BookingNotPending(BookingError):
    code = "BOOKING_NOT_PENDING"
    status_code = 409


class PaymentSetupFailed(BookingError):
    """Payment intent could not be created; the reservation stays pending."""

    code = "PAYMENT_SETUP_FAILED"
    status_code = 502
    retryable = True


class PersistenceError(BookingError):
    code = "PERSISTENCE_ERROR"
    status_code = 503
    retryable = True


class SlotConflict(Exception):
    """Raised by stores when the insert would overlap a blocking reservation."""


__all__ = [
    "BookingError",
    "InvalidInput",
    "ArtistOrServiceNotFound",
    "ReservationNotFound",
    "ServiceUnavailable",
    "SlotUnavailable",
    "SlotTaken",
    "PaymentSetupIncomplete",
    "BookingNotPending",
    "PaymentSetupFailed",
    "PersistenceError",
    "SlotConflict",
]

"""Test configuration and shared fixtures.

Adds the repository root to sys.path so `import inkslot` works in CI where the
checkout directory may not be on PYTHONPATH by default. Fixtures build an
in-memory world: one artist in UTC working Mon-Fri 09:00-18:00, a flash and a
service offering, and a clock frozen on Saturday 2024-06-01 12:00 UTC.
"""

from __future__ import annotations

import sys
import uuid
from datetime import UTC, datetime, time, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from inkslot.app.domain.models import (  # noqa: E402
    Artist,
    BookingStatus,
    Offering,
    OfferingKind,
    OfferingStatus,
    PaymentStatus,
    Reservation,
    WorkingHour,
)
from inkslot.app.integrations.payments import PaymentGatewayError, PaymentIntentHandle  # noqa: E402
from inkslot.app.services.booking import BookingEngine  # noqa: E402
from inkslot.app.tests_new.memory_store import MemoryReservationStore  # noqa: E402

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)  # Saturday
MONDAY = datetime(2024, 6, 3, tzinfo=UTC)


class FakeGateway:
    """Payment collaborator double; flip ``fail`` to simulate Stripe outages."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict] = []

    async def create_payment_intent(self, amount, currency, destination, metadata):
        self.calls.append(
            {"amount": amount, "currency": currency, "destination": destination, "metadata": metadata}
        )
        if self.fail:
            raise PaymentGatewayError("card network down")
        n = len(self.calls)
        return PaymentIntentHandle(intent_id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret")


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def at():
    """``at(10)`` is Monday 2024-06-03 10:00 UTC; ``days`` shifts the date."""

    def _at(hour: int, minute: int = 0, *, days: int = 0) -> datetime:
        return MONDAY + timedelta(days=days, hours=hour, minutes=minute)

    return _at


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def artist():
    return Artist(
        id=uuid.uuid4(),
        slug="mara-ink",
        display_name="Mara Ink",
        timezone="UTC",
        deposit_percentage=30,
        minimum_lead_time_hours=0,
        buffer_minutes=0,
        stripe_account_id="acct_mara",
        stripe_onboarding_complete=True,
        cal_com_username=None,
        cal_com_event_type_id=None,
        created_at=NOW,
    )


@pytest.fixture
def working_hours(artist):
    return [
        WorkingHour(
            id=day,
            artist_id=artist.id,
            day_of_week=day,
            start_time=time(9),
            end_time=time(18),
            is_active=True,
        )
        for day in range(1, 6)
    ]


@pytest.fixture
def flash(artist):
    return Offering(
        id=uuid.uuid4(),
        artist_id=artist.id,
        kind=OfferingKind.FLASH,
        title="Swallow",
        price_cents=20000,
        duration_minutes=60,
        status=OfferingStatus.AVAILABLE,
        stock_limit=None,
        stock_current=0,
        slot_step_minutes=None,
    )


@pytest.fixture
def service(artist):
    return Offering(
        id=uuid.uuid4(),
        artist_id=artist.id,
        kind=OfferingKind.SERVICE,
        title="Custom piece",
        price_cents=45000,
        duration_minutes=120,
        status=OfferingStatus.AVAILABLE,
        stock_limit=None,
        stock_current=0,
        slot_step_minutes=30,
    )


@pytest.fixture
def make_reservation(artist, flash):
    def _make(
        start: datetime,
        minutes: int = 60,
        *,
        status: BookingStatus = BookingStatus.PENDING,
        payment: PaymentStatus = PaymentStatus.PENDING,
        buffer_minutes: int = 0,
        created_at: datetime = NOW,
        offering: Offering | None = None,
    ) -> Reservation:
        end = start + timedelta(minutes=minutes)
        return Reservation(
            id=uuid.uuid4(),
            artist_id=artist.id,
            offering_id=(offering or flash).id,
            client_email="someone@example.com",
            client_name=None,
            client_phone=None,
            start_time=start,
            end_time=end,
            blocked_until=end + timedelta(minutes=buffer_minutes),
            duration_minutes=minutes,
            price_total_cents=20000,
            deposit_amount_cents=6000,
            deposit_percentage=30,
            currency="EUR",
            payment_status=payment,
            booking_status=status,
            payment_intent_id=None,
            notes=None,
            created_at=created_at,
            updated_at=created_at,
        )

    return _make


@pytest.fixture
def store(artist, flash, service, working_hours):
    return MemoryReservationStore(
        artists=[artist],
        offerings=[flash, service],
        working_hours=working_hours,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def engine(store, gateway, clock):
    return BookingEngine(store, gateway, clock=clock)

"""FastAPI surface for availability and bookings.

Thin adapter over ``BookingEngine``: every endpoint funnels into the same
engine, and ``booking_error_handler`` turns the booking failure taxonomy into
stable JSON error bodies.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import date as _date, datetime
from functools import wraps
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from inkslot.app.core.constants import EXPIRATION_WORKER_ENABLED, MIN_SERVICE_DURATION_MINUTES
from inkslot.app.core.db import dispose_engine
from inkslot.app.integrations.calcom import CalComClient, CalComError
from inkslot.app.integrations.payments import (
    DEPOSIT_METADATA_TYPE,
    StripePaymentGateway,
    WebhookVerificationError,
    construct_webhook_event,
)
from inkslot.app.services.booking import BookingEngine, BookingRequest, ClientContact
from inkslot.app.services.errors import BookingError
from inkslot.app.services.slots import AvailabilityQuery, EmbedSlotSource
from inkslot.app.services.store import SqlReservationStore
from inkslot.config import get_availability_cache_seconds

logger = logging.getLogger(__name__)

_raw_origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",")]
ALLOWED_ORIGINS = [o for o in _raw_origins if o]
ALLOW_ALL_ORIGINS = not ALLOWED_ORIGINS


class SlotOut(BaseModel):
    date: str
    startTime: str
    endTime: str
    isoStart: str
    available: bool = True


class AvailabilityResponse(BaseModel):
    slots: list[SlotOut]
    timezone: str
    duration_minutes: Optional[int] = None
    step_minutes: Optional[int] = None


class BookingCreateRequest(BaseModel):
    artist_id: uuid.UUID
    offering_id: uuid.UUID
    start_time: datetime
    email: str = Field(..., min_length=3, max_length=254)
    name: Optional[str] = None
    phone: Optional[str] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)


class BookingResponse(BaseModel):
    ok: bool
    reservation_id: Optional[str] = None
    status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    deposit_amount: Optional[int] = None
    currency: Optional[str] = None


class DepositIntentResponse(BaseModel):
    ok: bool
    reservation_id: str
    payment_intent_id: str
    client_secret: Optional[str] = None


class CancelPendingRequest(BaseModel):
    reservation_id: uuid.UUID


# ---------------------------------------------------------------------------
# Error handling helpers
# ---------------------------------------------------------------------------

def error_response(
    status_code: int, code: str, *, retryable: bool = False, reservation_id: uuid.UUID | None = None
) -> JSONResponse:
    body: dict[str, Any] = {"ok": False, "error": code, "retryable": retryable}
    if reservation_id is not None:
        body["reservation_id"] = str(reservation_id)
    return JSONResponse(status_code=status_code, content=body)


def booking_error_handler(func):
    """Decorator to de-duplicate try/except in booking endpoints.

    - Converts ``BookingError`` into its code and HTTP status.
    - Logs unexpected exceptions and returns a generic INTERNAL_ERROR.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except BookingError as exc:
            logger.info("%s rejected: %s (%s)", func.__name__, exc.code, exc)
            return error_response(
                exc.status_code, exc.code, retryable=exc.retryable, reservation_id=exc.reservation_id
            )
        except Exception as exc:  # noqa: BLE001 - API boundary
            logger.exception("%s failed: %s", func.__name__, exc)
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", retryable=True)

    return wrapper


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_booking_engine() -> BookingEngine:
    return BookingEngine(SqlReservationStore(), StripePaymentGateway())


def get_calcom_client() -> CalComClient:
    return CalComClient()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    stop_worker = None
    if EXPIRATION_WORKER_ENABLED:
        from inkslot.app.workers.expiration import start_expiration_worker

        stop_worker = await start_expiration_worker(SqlReservationStore())
    try:
        yield
    finally:
        if stop_worker is not None:
            await stop_worker()
        await dispose_engine()


app = FastAPI(title="Inkslot Booking API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if ALLOW_ALL_ORIGINS else ALLOWED_ORIGINS,
    allow_credentials=not ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Invalid request on %s: %s", request.url.path, exc.errors())
    return error_response(status.HTTP_400_BAD_REQUEST, "INVALID_INPUT")


@app.get("/api/availability", response_model=AvailabilityResponse)
@booking_error_handler
async def get_availability(
    response: Response,
    artist_id: uuid.UUID,
    offering_id: Optional[uuid.UUID] = None,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
    step_minutes: Optional[int] = None,
    engine: BookingEngine = Depends(get_booking_engine),
):
    availability = await engine.slots.availability(
        AvailabilityQuery(
            artist_id=artist_id,
            offering_id=offering_id,
            range_start=range_start,
            range_end=range_end,
            duration_minutes=duration_minutes,
            step_minutes=step_minutes,
        )
    )
    response.headers["Cache-Control"] = f"public, max-age={get_availability_cache_seconds()}"
    return AvailabilityResponse(
        slots=[SlotOut(**slot.to_dict()) for slot in availability.slots],
        timezone=availability.timezone,
        duration_minutes=availability.duration_minutes,
        step_minutes=availability.step_minutes,
    )


@app.get("/api/calendar/slots", response_model=AvailabilityResponse)
@booking_error_handler
async def get_calendar_slots(
    artist_id: uuid.UUID,
    date: Optional[_date] = None,
    duration_minutes: int = Query(60, ge=MIN_SERVICE_DURATION_MINUTES),
    engine: BookingEngine = Depends(get_booking_engine),
    calcom: CalComClient = Depends(get_calcom_client),
):
    try:
        availability = await engine.slots.availability(
            AvailabilityQuery(
                artist_id=artist_id,
                day=date,
                single_day=True,
                duration_minutes=duration_minutes,
                step_minutes=duration_minutes,
            ),
            source=EmbedSlotSource(calcom),
        )
        slots = [SlotOut(**slot.to_dict()) for slot in availability.slots]
    except CalComError as exc:
        logger.warning("Cal.com slots unavailable for artist %s: %s", artist_id, exc)
        return error_response(status.HTTP_502_BAD_GATEWAY, "CALENDAR_UNAVAILABLE", retryable=True)
    return AvailabilityResponse(slots=slots, timezone=availability.timezone, duration_minutes=duration_minutes)


@app.post("/api/bookings", response_model=BookingResponse)
@booking_error_handler
async def create_booking(
    payload: BookingCreateRequest, engine: BookingEngine = Depends(get_booking_engine)
):
    result = await engine.create_reservation(
        BookingRequest(
            artist_id=payload.artist_id,
            offering_id=payload.offering_id,
            start_time=payload.start_time,
            contact=ClientContact(email=payload.email, name=payload.name, phone=payload.phone),
            duration_minutes=payload.duration_minutes,
            notes=payload.notes,
        )
    )
    res = result.reservation
    return BookingResponse(
        ok=True,
        reservation_id=str(res.id),
        status=res.booking_status.value,
        payment_intent_id=result.payment.intent_id,
        client_secret=result.payment.client_secret,
        deposit_amount=res.deposit_amount_cents,
        currency=res.currency,
    )


@app.post("/api/bookings/cancel-pending")
@booking_error_handler
async def cancel_pending_booking(
    payload: CancelPendingRequest, engine: BookingEngine = Depends(get_booking_engine)
):
    await engine.cancel_pending(payload.reservation_id)
    return {"ok": True}


@app.post("/api/bookings/{reservation_id}/deposit-intent", response_model=DepositIntentResponse)
@booking_error_handler
async def create_deposit_intent(
    reservation_id: uuid.UUID, engine: BookingEngine = Depends(get_booking_engine)
):
    handle = await engine.create_deposit_intent(reservation_id)
    return DepositIntentResponse(
        ok=True,
        reservation_id=str(reservation_id),
        payment_intent_id=handle.intent_id,
        client_secret=handle.client_secret,
    )


@app.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    payload = await request.body()
    try:
        event = construct_webhook_event(payload, stripe_signature)
    except WebhookVerificationError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    if event["type"] != "payment_intent.succeeded":
        logger.debug("Ignoring Stripe event %s", event["type"])
        return {"received": True}

    intent = event["data"]["object"]
    metadata = intent.get("metadata") or {}
    raw_id = metadata.get("reservation_id")
    if metadata.get("type") != DEPOSIT_METADATA_TYPE or not raw_id:
        logger.info("PaymentIntent %s is not a booking deposit", intent.get("id"))
        return {"received": True}
    try:
        reservation_id = uuid.UUID(str(raw_id))
    except ValueError:
        logger.warning("PaymentIntent %s carries invalid reservation_id %r", intent.get("id"), raw_id)
        return {"received": True}

    try:
        await engine.confirm_deposit(reservation_id, intent.get("id"))
    except BookingError as exc:
        # Non-2xx makes Stripe redeliver the event later
        logger.error("Deposit confirmation for %s failed: %s", reservation_id, exc)
        return error_response(exc.status_code, exc.code, retryable=True)
    return {"received": True}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


def get_app() -> FastAPI:
    """Exported factory for uvicorn or tests."""
    return app

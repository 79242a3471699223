"""Stripe Connect payment collaborator for booking deposits."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from inkslot.config import get_platform_fee_percent, get_setting

logger = logging.getLogger(__name__)

DEPOSIT_METADATA_TYPE = "booking_deposit"


class PaymentGatewayError(RuntimeError):
    pass


class WebhookVerificationError(PaymentGatewayError):
    pass


@dataclass(frozen=True)
class PaymentIntentHandle:
    intent_id: str
    client_secret: str | None = None


class PaymentGateway(Protocol):
    async def create_payment_intent(
        self, amount: int, currency: str, destination: str, metadata: dict[str, str]
    ) -> PaymentIntentHandle: ...


def percent_of(amount_cents: int, percent: int) -> int:
    """Integer percentage rounded half up."""
    return (int(amount_cents) * int(percent) + 50) // 100


class StripePaymentGateway:
    def __init__(self, api_key: str | None = None, *, fee_percent: int | None = None) -> None:
        self.api_key = api_key if api_key is not None else get_setting("stripe_secret_key", "")
        self.fee_percent = get_platform_fee_percent() if fee_percent is None else int(fee_percent)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_intent_kwargs(
        self, amount: int, currency: str, destination: str, metadata: dict[str, str]
    ) -> dict[str, Any]:
        return {
            "amount": int(amount),
            "currency": currency.lower(),
            "transfer_data": {"destination": destination},
            "application_fee_amount": percent_of(amount, self.fee_percent),
            "automatic_payment_methods": {"enabled": True},
            "metadata": {**metadata, "type": DEPOSIT_METADATA_TYPE},
        }

    async def create_payment_intent(
        self, amount: int, currency: str, destination: str, metadata: dict[str, str]
    ) -> PaymentIntentHandle:
        if not self.configured:
            raise PaymentGatewayError("Stripe secret key is not configured")
        kwargs = self.build_intent_kwargs(amount, currency, destination, metadata)
        try:
            # stripe-python is synchronous; keep it off the event loop
            intent = await asyncio.to_thread(stripe.PaymentIntent.create, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.warning("Stripe PaymentIntent.create failed for %s: %s", metadata.get("reservation_id"), exc)
            raise PaymentGatewayError(str(exc)) from exc
        logger.info("Created PaymentIntent %s for reservation %s", intent["id"], metadata.get("reservation_id"))
        return PaymentIntentHandle(intent_id=intent["id"], client_secret=intent.get("client_secret"))


def construct_webhook_event(payload: bytes, signature: str | None, secret: str | None = None) -> Any:
    """Verify a Stripe webhook signature and return the parsed event."""
    secret_value = secret if secret is not None else get_setting("stripe_webhook_secret", "")
    if not secret_value:
        raise WebhookVerificationError("Webhook secret not configured")
    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret_value)
    except stripe.SignatureVerificationError as exc:
        logger.warning("Invalid webhook signature: %s", exc)
        raise WebhookVerificationError("Invalid webhook signature") from exc
    except ValueError as exc:
        logger.warning("Invalid webhook payload: %s", exc)
        raise WebhookVerificationError("Invalid webhook payload") from exc


__all__ = [
    "PaymentGateway",
    "PaymentGatewayError",
    "PaymentIntentHandle",
    "StripePaymentGateway",
    "WebhookVerificationError",
    "construct_webhook_event",
    "percent_of",
    "DEPOSIT_METADATA_TYPE",
]

import pytest
import stripe

from inkslot.app.integrations import payments
from inkslot.app.integrations.payments import (
    PaymentGatewayError,
    StripePaymentGateway,
    WebhookVerificationError,
    construct_webhook_event,
    percent_of,
)


def test_percent_of_rounds_half_up():
    assert percent_of(20000, 30) == 6000
    assert percent_of(250, 5) == 13
    assert percent_of(240, 5) == 12
    assert percent_of(0, 30) == 0


def test_intent_kwargs_route_funds_to_artist():
    gateway = StripePaymentGateway("sk_test", fee_percent=5)
    kwargs = gateway.build_intent_kwargs(6000, "EUR", "acct_mara", {"reservation_id": "r1"})
    assert kwargs == {
        "amount": 6000,
        "currency": "eur",
        "transfer_data": {"destination": "acct_mara"},
        "application_fee_amount": 300,
        "automatic_payment_methods": {"enabled": True},
        "metadata": {"reservation_id": "r1", "type": payments.DEPOSIT_METADATA_TYPE},
    }


@pytest.mark.asyncio
async def test_create_payment_intent_calls_stripe(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return {"id": "pi_123", "client_secret": "pi_123_secret"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = StripePaymentGateway("sk_test", fee_percent=10)

    handle = await gateway.create_payment_intent(5000, "EUR", "acct_x", {"reservation_id": "r1"})

    assert handle.intent_id == "pi_123"
    assert handle.client_secret == "pi_123_secret"
    assert captured["api_key"] == "sk_test"
    assert captured["application_fee_amount"] == 500


@pytest.mark.asyncio
async def test_stripe_error_is_wrapped(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    with pytest.raises(PaymentGatewayError):
        await StripePaymentGateway("sk_test").create_payment_intent(5000, "EUR", "acct_x", {})


@pytest.mark.asyncio
async def test_unconfigured_gateway_refuses():
    with pytest.raises(PaymentGatewayError):
        await StripePaymentGateway("").create_payment_intent(5000, "EUR", "acct_x", {})


def test_construct_webhook_event_requires_secret_and_signature():
    with pytest.raises(WebhookVerificationError):
        construct_webhook_event(b"{}", "sig", secret="")
    with pytest.raises(WebhookVerificationError):
        construct_webhook_event(b"{}", None, secret="whsec_x")


def test_construct_webhook_event_maps_signature_failure(monkeypatch):
    def fake_construct(payload, sig, secret):
        raise stripe.SignatureVerificationError("no match", sig)

    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct)
    with pytest.raises(WebhookVerificationError):
        construct_webhook_event(b"{}", "t=1,v1=bad", secret="whsec_x")


def test_construct_webhook_event_returns_event(monkeypatch):
    event = {"type": "payment_intent.succeeded"}
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)
    assert construct_webhook_event(b"{}", "t=1,v1=ok", secret="whsec_x") is event

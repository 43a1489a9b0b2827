import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import stripe

from app.core.config import settings
from app.core.errors import PaymentProviderError, SignatureError, ValidationError
from app.services.payment_service import PaymentFailed, PaymentOutcome, PaymentSucceeded

logger = logging.getLogger(__name__)

# Stripe amounts for these currencies are already in whole units.
ZERO_DECIMAL_CURRENCIES = {
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
}


def to_minor_units(amount: Decimal, currency: str) -> int:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(Decimal(amount).to_integral_value())
    return int((Decimal(amount) * 100).to_integral_value())


def from_minor_units(value: int, currency: str) -> Decimal:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(value)
    return Decimal(value) / Decimal(100)


@dataclass(frozen=True)
class ChargeIntent:
    id: str
    client_secret: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    booking_id: Optional[str]
    outcome: PaymentOutcome


def _method_of(intent: dict) -> str:
    types = intent.get("payment_method_types") or ["card"]
    return "credit_card" if "card" in types else types[0]


def outcome_from_intent(intent: dict) -> Optional[PaymentOutcome]:
    """Map a PaymentIntent payload to an outcome; None while still in flight."""
    status = intent.get("status")
    currency = intent.get("currency") or "usd"
    if status == "succeeded":
        received = intent.get("amount_received") or intent.get("amount") or 0
        return PaymentSucceeded(
            transaction_id=intent["id"],
            amount=from_minor_units(received, currency),
            method=_method_of(intent),
        )
    if status in ("canceled", "requires_payment_method") and intent.get("last_payment_error"):
        error = intent.get("last_payment_error") or {}
        return PaymentFailed(reason=error.get("message") or status, transaction_id=intent["id"])
    if status == "canceled":
        return PaymentFailed(reason="payment intent canceled", transaction_id=intent["id"])
    return None


def parse_event(event: dict) -> Optional[WebhookEvent]:
    event_type = event.get("type", "")
    intent = (event.get("data") or {}).get("object") or {}
    booking_id = (intent.get("metadata") or {}).get("booking_id")
    currency = intent.get("currency") or "usd"

    if event_type == "payment_intent.succeeded":
        outcome = PaymentSucceeded(
            transaction_id=intent["id"],
            amount=from_minor_units(intent.get("amount_received") or intent.get("amount") or 0, currency),
            method=_method_of(intent),
        )
    elif event_type == "payment_intent.payment_failed":
        error = intent.get("last_payment_error") or {}
        outcome = PaymentFailed(reason=error.get("message") or "payment failed", transaction_id=intent.get("id"))
    else:
        return None
    return WebhookEvent(event_id=event.get("id", ""), event_type=event_type, booking_id=booking_id, outcome=outcome)


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls) -> "StripeGateway":
        return cls(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET, settings.STRIPE_WEBHOOK_TOLERANCE)

    def _require_key(self) -> None:
        if not self.api_key:
            raise PaymentProviderError("stripe is not configured")

    def create_charge_intent(self, amount: Decimal, currency: str, metadata: dict,
                             idempotency_key: str | None = None) -> ChargeIntent:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount, currency),
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.warning("stripe intent creation failed: %s", e)
            raise PaymentProviderError("could not create payment intent") from e
        return ChargeIntent(id=intent.id, client_secret=intent.client_secret, amount=Decimal(amount), currency=currency)

    def retrieve_intent(self, intent_id: str) -> dict:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.warning("stripe intent %s lookup failed: %s", intent_id, e)
            raise PaymentProviderError("could not retrieve payment intent") from e
        return intent.to_dict() if hasattr(intent, "to_dict") else dict(intent)

    def retrieve_outcome(self, intent_id: str) -> tuple[Optional[str], Optional[PaymentOutcome]]:
        """(booking_id from metadata, outcome or None while pending)."""
        intent = self.retrieve_intent(intent_id)
        return (intent.get("metadata") or {}).get("booking_id"), outcome_from_intent(intent)

    def refund(self, transaction_id: str, amount: Decimal, currency: str) -> str:
        self._require_key()
        try:
            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=to_minor_units(amount, currency),
                api_key=self.api_key,
                idempotency_key=f"refund-{transaction_id}-{amount}",
            )
        except stripe.StripeError as e:
            logger.warning("stripe refund for %s failed: %s", transaction_id, e)
            raise PaymentProviderError("refund failed at payment provider") from e
        return refund.id

    def verify_and_parse_webhook(self, payload: bytes, signature_header: str | None) -> Optional[WebhookEvent]:
        """Verify the Stripe-Signature header over the raw body, then parse it.

        Raises SignatureError before anything is parsed; returns None for event
        types that carry no payment outcome.
        """
        if not self.webhook_secret or not signature_header:
            raise SignatureError("missing signature or webhook secret")
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(body, signature_header, self.webhook_secret, self.tolerance)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("stripe webhook signature rejected: %s", e)
            raise SignatureError(str(e)) from e
        try:
            event = json.loads(body)
        except ValueError as e:
            raise ValidationError("webhook body is not valid JSON") from e
        return parse_event(event)

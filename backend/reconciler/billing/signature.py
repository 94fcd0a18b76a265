"""Stripe webhook signature verification."""

import stripe
from pydantic import ValidationError

from reconciler.billing.events import StripeEventEnvelope
from reconciler.core.exceptions import InvalidSignatureError, MalformedPayloadError


def verify_stripe_webhook(
    payload: bytes,
    signature: str | None,
    secret: str,
    tolerance: int = 300,
) -> StripeEventEnvelope:
    """Authenticate a raw webhook body and parse it into an event envelope.

    The signature is checked over the exact bytes received, before any JSON
    parsing, using the SDK's constant-time comparison.

    Raises:
        InvalidSignatureError: header missing, malformed, stale, or not matching
        MalformedPayloadError: authenticated body is not a Stripe event envelope
    """
    if not signature:
        raise InvalidSignatureError("Missing stripe-signature header")

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedPayloadError("Webhook body is not valid UTF-8") from exc

    try:
        stripe.WebhookSignature.verify_header(text, signature, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError("Invalid signature") from exc

    try:
        return StripeEventEnvelope.model_validate_json(payload)
    except ValidationError as exc:
        raise MalformedPayloadError(f"Invalid payload: {exc.error_count()} validation error(s)") from exc

"""Stripe webhook reconciliation pipeline."""

from reconciler.billing.dispatcher import ReconciliationDispatcher
from reconciler.billing.event_store import WebhookEventStore
from reconciler.billing.events import StripeEventEnvelope, StripeEventType
from reconciler.billing.signature import verify_stripe_webhook

__all__ = [
    "ReconciliationDispatcher",
    "StripeEventEnvelope",
    "StripeEventType",
    "WebhookEventStore",
    "verify_stripe_webhook",
]

"""Re-export all models so Base.metadata sees them."""

from reconciler.db.models.stripe_customer import StripeCustomer
from reconciler.db.models.stripe_invoice import StripeInvoice
from reconciler.db.models.stripe_subscription import StripeSubscription, SubscriptionStatus
from reconciler.db.models.webhook_event import StripeWebhookEvent

__all__ = [
    "StripeCustomer",
    "StripeInvoice",
    "StripeSubscription",
    "StripeWebhookEvent",
    "SubscriptionStatus",
]

"""Stripe event types and the verified event envelope."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StripeEventType(str, Enum):
    """Every Stripe event type the reconciler acts on.

    Anything else Stripe sends is acknowledged without side effects.
    """

    # Subscription lifecycle
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_PAUSED = "customer.subscription.paused"
    SUBSCRIPTION_RESUMED = "customer.subscription.resumed"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    # Invoices
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    INVOICE_PAYMENT_ACTION_REQUIRED = "invoice.payment_action_required"

    # Customers
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"

    # Acknowledged and logged only
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"

    @classmethod
    def parse(cls, value: str) -> "StripeEventType | None":
        """Return the matching member, or None for types we don't handle."""
        try:
            return cls(value)
        except ValueError:
            return None


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: dict[str, Any]
    previous_attributes: dict[str, Any] | None = None


class StripeEventEnvelope(BaseModel):
    """The parts of a Stripe event the pipeline reads."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    created: int | None = None
    api_version: str | None = None
    livemode: bool = False
    data: StripeEventData

    @property
    def event_type(self) -> StripeEventType | None:
        return StripeEventType.parse(self.type)

    @property
    def data_object(self) -> dict[str, Any]:
        return self.data.object

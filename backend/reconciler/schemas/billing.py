"""Request/response models for the webhook and billing routes."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ── Webhooks ────────────────────────────────────────────────────────


class WebhookEventSummary(BaseModel):
    id: str
    type: str
    processed: bool


class WebhookResponse(BaseModel):
    received: bool = True
    event: WebhookEventSummary


class WebhookEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    processed: bool
    attempt_count: int
    processing_error: str | None = None
    received_at: datetime
    processed_at: datetime | None = None


# ── Billing ─────────────────────────────────────────────────────────


class CheckoutRequest(BaseModel):
    price_id: str = Field(min_length=1)
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutResponse(BaseModel):
    session_id: str
    url: str | None


class CancelSubscriptionRequest(BaseModel):
    immediately: bool = False


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    price_id: str
    product_id: str | None = None
    status: str
    quantity: int
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    canceled_at: datetime | None = None
    trial_start: datetime | None = None
    trial_end: datetime | None = None


class SyncedSubscriptionState(BaseModel):
    """Subscription state after a pull-based sync; status "none" when the customer has none."""

    status: str
    subscription_id: str | None = None
    price_id: str | None = None
    product_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    canceled_at: datetime | None = None
    trial_start: datetime | None = None
    trial_end: datetime | None = None


class SyncAfterCheckoutResponse(BaseModel):
    synced: bool
    subscription: SyncedSubscriptionState | None


class PriceResponse(BaseModel):
    id: str
    product: str
    currency: str
    unit_amount: int | None = None
    interval: str | None = None
    interval_count: int | None = None
    trial_period_days: int | None = None

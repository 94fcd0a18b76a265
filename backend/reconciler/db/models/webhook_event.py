"""StripeWebhookEvent model: the idempotency ledger for inbound Stripe events."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from reconciler.db.base import Base


class StripeWebhookEvent(Base):
    """One row per Stripe event id.

    ``processed`` flips false -> true exactly once, in the same transaction
    as the projection writes the event caused.
    """

    __tablename__ = "stripe_webhook_events"

    id = Column(String(255), primary_key=True)  # Stripe event id (evt_...)
    type = Column(String(255), nullable=False, index=True)
    api_version = Column(String(50), nullable=True)
    livemode = Column(Boolean, nullable=False, default=False)
    payload = Column(JSON, nullable=False)  # raw event envelope, kept for audit and replay

    processed = Column(Boolean, nullable=False, default=False, index=True)
    processing_error = Column(Text, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)

    received_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    processed_at = Column(DateTime(timezone=True), nullable=True)

"""StripeSubscription model: local projection of a Stripe subscription."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from reconciler.db.base import Base


class SubscriptionStatus(str, Enum):
    """Subscription states as reported by Stripe."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    PAUSED = "paused"


class StripeSubscription(Base):
    __tablename__ = "stripe_subscriptions"

    id = Column(String(255), primary_key=True)  # sub_...
    customer_id = Column(String(255), ForeignKey("stripe_customers.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)

    price_id = Column(String(255), nullable=False, index=True)
    product_id = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False, index=True)  # SubscriptionStatus values
    quantity = Column(Integer, nullable=False, default=1)

    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    cancel_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

"""StripeCustomer model: local projection of a Stripe customer."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from reconciler.db.base import Base


class StripeCustomer(Base):
    __tablename__ = "stripe_customers"

    id = Column(String(255), primary_key=True)  # cus_...
    # Not unique: a user whose Stripe customer was deleted gets a new one
    user_id = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    default_payment_method_id = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # set on customer.deleted

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

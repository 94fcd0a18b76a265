"""StripeInvoice model: local projection of a Stripe invoice."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from reconciler.db.base import Base


class StripeInvoice(Base):
    __tablename__ = "stripe_invoices"

    id = Column(String(255), primary_key=True)  # in_...
    customer_id = Column(String(255), ForeignKey("stripe_customers.id"), nullable=False, index=True)
    # Plain id, no FK: invoice.paid routinely arrives before customer.subscription.created
    subscription_id = Column(String(255), nullable=True, index=True)

    status = Column(String(50), nullable=False, index=True)
    amount_due = Column(Integer, nullable=False, default=0)  # minor units
    amount_paid = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="usd")
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)
    hosted_invoice_url = Column(Text, nullable=True)
    invoice_pdf = Column(Text, nullable=True)
    paid = Column(Boolean, nullable=False, default=False)
    attempt_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

"""create stripe reconciliation tables

Revision ID: b7d21e4c9a10
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7d21e4c9a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the webhook event ledger and the customer/subscription/invoice projections."""
    op.create_table(
        "stripe_webhook_events",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=255), nullable=False),
        sa.Column("api_version", sa.String(length=50), nullable=True),
        sa.Column("livemode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stripe_webhook_events_type"), "stripe_webhook_events", ["type"], unique=False)
    op.create_index(
        op.f("ix_stripe_webhook_events_processed"), "stripe_webhook_events", ["processed"], unique=False
    )

    op.create_table(
        "stripe_customers",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("default_payment_method_id", sa.String(length=255), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stripe_customers_user_id"), "stripe_customers", ["user_id"], unique=False)

    op.create_table(
        "stripe_subscriptions",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("price_id", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancel_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["customer_id"], ["stripe_customers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_stripe_subscriptions_customer_id"), "stripe_subscriptions", ["customer_id"], unique=False
    )
    op.create_index(op.f("ix_stripe_subscriptions_user_id"), "stripe_subscriptions", ["user_id"], unique=False)
    op.create_index(op.f("ix_stripe_subscriptions_price_id"), "stripe_subscriptions", ["price_id"], unique=False)
    op.create_index(op.f("ix_stripe_subscriptions_status"), "stripe_subscriptions", ["status"], unique=False)

    op.create_table(
        "stripe_invoices",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("subscription_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("amount_due", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="usd"),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hosted_invoice_url", sa.Text(), nullable=True),
        sa.Column("invoice_pdf", sa.Text(), nullable=True),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["customer_id"], ["stripe_customers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stripe_invoices_customer_id"), "stripe_invoices", ["customer_id"], unique=False)
    op.create_index(
        op.f("ix_stripe_invoices_subscription_id"), "stripe_invoices", ["subscription_id"], unique=False
    )
    op.create_index(op.f("ix_stripe_invoices_status"), "stripe_invoices", ["status"], unique=False)


def downgrade() -> None:
    """Drop the reconciliation tables, children first."""
    op.drop_index(op.f("ix_stripe_invoices_status"), table_name="stripe_invoices")
    op.drop_index(op.f("ix_stripe_invoices_subscription_id"), table_name="stripe_invoices")
    op.drop_index(op.f("ix_stripe_invoices_customer_id"), table_name="stripe_invoices")
    op.drop_table("stripe_invoices")

    op.drop_index(op.f("ix_stripe_subscriptions_status"), table_name="stripe_subscriptions")
    op.drop_index(op.f("ix_stripe_subscriptions_price_id"), table_name="stripe_subscriptions")
    op.drop_index(op.f("ix_stripe_subscriptions_user_id"), table_name="stripe_subscriptions")
    op.drop_index(op.f("ix_stripe_subscriptions_customer_id"), table_name="stripe_subscriptions")
    op.drop_table("stripe_subscriptions")

    op.drop_index(op.f("ix_stripe_customers_user_id"), table_name="stripe_customers")
    op.drop_table("stripe_customers")

    op.drop_index(op.f("ix_stripe_webhook_events_processed"), table_name="stripe_webhook_events")
    op.drop_index(op.f("ix_stripe_webhook_events_type"), table_name="stripe_webhook_events")
    op.drop_table("stripe_webhook_events")

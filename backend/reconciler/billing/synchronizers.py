"""Entity synchronizers: turn Stripe objects into local projection rows.

Each synchronizer builds the full row from a Stripe object and writes it
with a single upsert keyed by the Stripe id, so applying the same object
twice leaves the same row behind. Parent rows are checked first; a missing
parent raises ``DanglingReferenceError`` instead of writing a half-linked row.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.core.exceptions import DanglingReferenceError, MalformedPayloadError
from reconciler.db.models.stripe_customer import StripeCustomer
from reconciler.db.models.stripe_invoice import StripeInvoice
from reconciler.db.models.stripe_subscription import StripeSubscription, SubscriptionStatus
from reconciler.db.upsert import upsert

logger = structlog.get_logger(__name__)


def _timestamp(value: int | None) -> datetime | None:
    """Stripe epoch seconds -> aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), UTC)


def _object_id(value: str | dict | None) -> str | None:
    """Stripe references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


async def _require_customer(session: AsyncSession, entity: str, entity_id: str, customer_id: str | None) -> StripeCustomer:
    if not customer_id:
        raise MalformedPayloadError(f"{entity} '{entity_id}' has no customer")
    customer = await session.get(StripeCustomer, customer_id)
    if customer is None:
        raise DanglingReferenceError(entity, entity_id, "customer", customer_id)
    return customer


# ── Subscriptions ───────────────────────────────────────────────────


def subscription_row(subscription: dict[str, Any], user_id: str) -> dict[str, Any]:
    """Build a stripe_subscriptions row from a Stripe subscription object."""
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        raise MalformedPayloadError(f"Subscription '{subscription['id']}' has no items")
    item = items[0]
    price = item.get("price") or {}

    # Newer API versions report the billing period on the item instead of the subscription
    period_start = subscription.get("current_period_start") or item.get("current_period_start")
    period_end = subscription.get("current_period_end") or item.get("current_period_end")
    if period_start is None or period_end is None:
        raise MalformedPayloadError(f"Subscription '{subscription['id']}' has no current period")

    try:
        status = SubscriptionStatus(subscription["status"])
    except (KeyError, ValueError):
        raise MalformedPayloadError(
            f"Subscription '{subscription['id']}' has unknown status {subscription.get('status')!r}"
        ) from None

    now = datetime.now(UTC)
    return {
        "id": subscription["id"],
        "customer_id": _object_id(subscription.get("customer")),
        "user_id": user_id,
        "price_id": price.get("id"),
        "product_id": _object_id(price.get("product")),
        "status": status.value,
        "quantity": item.get("quantity") or 1,
        "current_period_start": _timestamp(period_start),
        "current_period_end": _timestamp(period_end),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "cancel_at": _timestamp(subscription.get("cancel_at")),
        "canceled_at": _timestamp(subscription.get("canceled_at")),
        "ended_at": _timestamp(subscription.get("ended_at")),
        "trial_start": _timestamp(subscription.get("trial_start")),
        "trial_end": _timestamp(subscription.get("trial_end")),
        "metadata_": subscription.get("metadata") or None,
        "created_at": _timestamp(subscription.get("created")) or now,
        "updated_at": now,
    }


async def sync_subscription(session: AsyncSession, subscription: dict[str, Any]) -> dict[str, Any]:
    """Upsert a subscription. The owning user comes from the local customer row."""
    customer = await _require_customer(
        session, "subscription", subscription["id"], _object_id(subscription.get("customer"))
    )
    row = subscription_row(subscription, customer.user_id)
    await upsert(session, StripeSubscription, row)
    logger.info(
        "subscription_synced",
        subscription_id=row["id"],
        customer_id=row["customer_id"],
        status=row["status"],
    )
    return row


async def mark_subscription_canceled(
    session: AsyncSession,
    subscription_id: str,
    canceled_at: datetime | None = None,
) -> bool:
    """Terminal write for a deleted subscription. Returns False if no local row exists."""
    now = datetime.now(UTC)
    result = await session.execute(
        update(StripeSubscription)
        .where(StripeSubscription.id == subscription_id)
        .values(
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=canceled_at or now,
            updated_at=now,
        )
    )
    return result.rowcount == 1


# ── Invoices ────────────────────────────────────────────────────────


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    if invoice.get("subscription"):
        return _object_id(invoice["subscription"])
    # Newer API versions nest the subscription under the invoice parent
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def invoice_row(invoice: dict[str, Any]) -> dict[str, Any]:
    """Build a stripe_invoices row from a Stripe invoice object."""
    status = invoice.get("status") or "draft"
    now = datetime.now(UTC)
    return {
        "id": invoice["id"],
        "customer_id": _object_id(invoice.get("customer")),
        "subscription_id": _invoice_subscription_id(invoice),
        "status": status,
        "amount_due": invoice.get("amount_due") or 0,
        "amount_paid": invoice.get("amount_paid") or 0,
        "currency": invoice.get("currency") or "usd",
        "period_start": _timestamp(invoice.get("period_start")),
        "period_end": _timestamp(invoice.get("period_end")),
        "hosted_invoice_url": invoice.get("hosted_invoice_url"),
        "invoice_pdf": invoice.get("invoice_pdf"),
        "paid": status == "paid",
        "attempt_count": invoice.get("attempt_count") or 0,
        "created_at": _timestamp(invoice.get("created")) or now,
        "updated_at": now,
    }


async def sync_invoice(session: AsyncSession, invoice: dict[str, Any]) -> dict[str, Any]:
    await _require_customer(session, "invoice", invoice["id"], _object_id(invoice.get("customer")))
    row = invoice_row(invoice)
    await upsert(session, StripeInvoice, row)
    logger.info("invoice_synced", invoice_id=row["id"], status=row["status"], paid=row["paid"])
    return row


# ── Customers ───────────────────────────────────────────────────────


async def sync_customer(session: AsyncSession, customer: dict[str, Any], user_key: str = "user_id") -> bool:
    """Upsert a customer that carries both the user correlation key and an email.

    Returns False (and writes nothing) when either is missing, which is also
    what Stripe returns for a customer that has since been deleted.
    """
    metadata = customer.get("metadata") or {}
    user_id = metadata.get(user_key)
    email = customer.get("email")
    if not user_id or not email:
        logger.info(
            "customer_sync_skipped",
            customer_id=customer.get("id"),
            has_user_id=bool(user_id),
            has_email=bool(email),
        )
        return False

    now = datetime.now(UTC)
    invoice_settings = customer.get("invoice_settings") or {}
    await upsert(
        session,
        StripeCustomer,
        {
            "id": customer["id"],
            "user_id": user_id,
            "email": email,
            "name": customer.get("name"),
            "default_payment_method_id": _object_id(invoice_settings.get("default_payment_method")),
            "metadata_": metadata or None,
            "created_at": _timestamp(customer.get("created")) or now,
            "updated_at": now,
        },
    )
    logger.info("customer_synced", customer_id=customer["id"], user_id=user_id)
    return True


async def mark_customer_deleted(session: AsyncSession, customer_id: str) -> bool:
    """Stamp a provider-side customer deletion. The row stays so its invoices keep their parent.

    A deleted customer no longer answers for its user: lookups by user skip it,
    and a later customer created for the same user takes its place.
    """
    now = datetime.now(UTC)
    result = await session.execute(
        update(StripeCustomer).where(StripeCustomer.id == customer_id).values(deleted_at=now, updated_at=now)
    )
    return result.rowcount == 1


async def active_customer_id(session: AsyncSession, user_id: str) -> str | None:
    """The user's newest customer that Stripe has not deleted."""
    result = await session.execute(
        select(StripeCustomer.id)
        .where(StripeCustomer.user_id == user_id, StripeCustomer.deleted_at.is_(None))
        .order_by(StripeCustomer.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()

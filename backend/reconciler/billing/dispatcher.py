"""Maps verified Stripe events to synchronizer calls."""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.billing.events import StripeEventEnvelope, StripeEventType
from reconciler.billing.synchronizers import (
    mark_customer_deleted,
    mark_subscription_canceled,
    sync_customer,
    sync_invoice,
    sync_subscription,
)
from reconciler.integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


class ReconciliationDispatcher:
    """Runs the sync actions for one event inside the caller's session.

    The caller commits; every write made here lands in one transaction
    together with the event's processed flag.
    """

    def __init__(self, client: StripeClient | None, *, refetch: bool = True, user_key: str = "user_id"):
        self.client = client
        self.refetch = refetch
        self.user_key = user_key

    async def _authoritative_subscription(self, subscription: dict[str, Any]) -> dict[str, Any]:
        """Current subscription state from Stripe, not the possibly stale event copy."""
        if not self.refetch or self.client is None:
            return subscription
        return await self.client.retrieve_subscription(subscription["id"])

    async def _authoritative_invoice(self, invoice: dict[str, Any]) -> dict[str, Any]:
        # A late invoice.payment_failed must not turn a paid invoice back to open
        if not self.refetch or self.client is None:
            return invoice
        return await self.client.retrieve_invoice(invoice["id"])

    async def _authoritative_customer(self, customer: dict[str, Any]) -> dict[str, Any]:
        if not self.refetch or self.client is None:
            return customer
        return await self.client.retrieve_customer(customer["id"])

    async def dispatch(self, session: AsyncSession, event: StripeEventEnvelope) -> str:
        """Apply the event. Returns the name of the action taken."""
        obj = event.data_object
        log = logger.bind(event_id=event.id, event_type=event.type)

        match event.event_type:
            case (
                StripeEventType.SUBSCRIPTION_CREATED
                | StripeEventType.SUBSCRIPTION_UPDATED
                | StripeEventType.SUBSCRIPTION_PAUSED
                | StripeEventType.SUBSCRIPTION_RESUMED
            ):
                subscription = await self._authoritative_subscription(obj)
                await sync_subscription(session, subscription)
                return "subscription_synced"

            case StripeEventType.SUBSCRIPTION_DELETED:
                # Deletion is final and a re-fetch would 404, so the payload is enough
                if not await mark_subscription_canceled(session, obj["id"]):
                    log.warning("subscription_deleted_unknown", subscription_id=obj["id"])
                return "subscription_canceled"

            case (
                StripeEventType.INVOICE_PAID
                | StripeEventType.INVOICE_PAYMENT_SUCCEEDED
                | StripeEventType.INVOICE_PAYMENT_FAILED
                | StripeEventType.INVOICE_PAYMENT_ACTION_REQUIRED
            ):
                invoice = await self._authoritative_invoice(obj)
                await sync_invoice(session, invoice)
                return "invoice_synced"

            case StripeEventType.CUSTOMER_CREATED | StripeEventType.CUSTOMER_UPDATED:
                customer = await self._authoritative_customer(obj)
                if await sync_customer(session, customer, self.user_key):
                    return "customer_synced"
                return "customer_skipped"

            case StripeEventType.CUSTOMER_DELETED:
                if not await mark_customer_deleted(session, obj["id"]):
                    log.info("customer_deleted_unknown", customer_id=obj["id"])
                return "customer_deleted"

            case StripeEventType.CHECKOUT_SESSION_COMPLETED:
                # customer.subscription.created follows and performs the real sync;
                # the client's return flow also calls /billing/sync-after-checkout.
                log.info(
                    "checkout_session_completed",
                    session_id=obj.get("id"),
                    customer_id=obj.get("customer"),
                    subscription_id=obj.get("subscription"),
                )
                return "logged"

            case StripeEventType.PAYMENT_INTENT_SUCCEEDED | StripeEventType.PAYMENT_INTENT_FAILED:
                log.info(
                    "payment_intent_observed",
                    payment_intent_id=obj.get("id"),
                    status=obj.get("status"),
                    amount=obj.get("amount"),
                )
                return "logged"

            case _:
                log.info("stripe_event_unhandled")
                return "ignored"

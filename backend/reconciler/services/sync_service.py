"""Pull-based sync: fetch a customer's subscription and invoices straight from Stripe.

Webhooks are not ordered, and checkout.session.completed writes nothing on
its own. The checkout return flow calls this so the subscription projection
exists no matter when (or whether) customer.subscription.created arrives.
"""

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconciler.billing.synchronizers import active_customer_id, sync_invoice, sync_subscription
from reconciler.core.exceptions import NotFoundError
from reconciler.db.models.stripe_customer import StripeCustomer
from reconciler.integrations.stripe_client import StripeClient
from reconciler.schemas.billing import SyncedSubscriptionState

logger = structlog.get_logger(__name__)


class StripeSyncService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: StripeClient,
        invoice_limit: int = 10,
    ):
        self.session_factory = session_factory
        self.client = client
        self.invoice_limit = invoice_limit

    async def customer_id_for_user(self, user_id: str) -> str | None:
        async with self.session_factory() as session:
            return await active_customer_id(session, user_id)

    async def sync_customer_from_stripe(self, customer_id: str) -> SyncedSubscriptionState:
        """Upsert the customer's newest subscription and recent invoices in one transaction.

        Raises:
            NotFoundError: the customer has no local row
            MalformedPayloadError: Stripe returned an object that cannot be synced
        """
        async with self.session_factory() as session:
            if await session.get(StripeCustomer, customer_id) is None:
                raise NotFoundError(f"Customer '{customer_id}' not found")

        subscriptions = await self.client.list_customer_subscriptions(customer_id, limit=1)
        invoices = await self.client.list_customer_invoices(customer_id, limit=self.invoice_limit)

        row = None
        async with self.session_factory() as session:
            if subscriptions:
                row = await sync_subscription(session, subscriptions[0])
            for invoice in invoices:
                await sync_invoice(session, invoice)
            await session.commit()

        logger.info(
            "stripe_customer_pull_synced",
            customer_id=customer_id,
            subscription_id=row["id"] if row else None,
            invoices=len(invoices),
        )

        if row is None:
            return SyncedSubscriptionState(status="none")
        return _state_from_row(row)


def _state_from_row(row: dict) -> SyncedSubscriptionState:
    fields: dict[str, str | bool | datetime | None] = {
        key: row[key]
        for key in (
            "status",
            "price_id",
            "product_id",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
            "trial_start",
            "trial_end",
        )
    }
    return SyncedSubscriptionState(subscription_id=row["id"], **fields)

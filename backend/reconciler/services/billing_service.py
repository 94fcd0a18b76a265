"""BillingService: user-initiated Stripe operations (checkout, cancel, prices)."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconciler.billing.synchronizers import active_customer_id, sync_customer, sync_subscription
from reconciler.core.exceptions import NotFoundError
from reconciler.db.models.stripe_subscription import StripeSubscription
from reconciler.integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


class BillingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: StripeClient,
        *,
        user_key: str = "user_id",
        frontend_url: str = "http://localhost:3000",
    ):
        self.session_factory = session_factory
        self.client = client
        self.user_key = user_key
        self.frontend_url = frontend_url

    async def get_or_create_customer(self, user_id: str, email: str, name: str | None = None) -> str:
        """Return the user's Stripe customer id, creating it at Stripe and locally on first checkout."""
        async with self.session_factory() as session:
            existing = await active_customer_id(session, user_id)
        if existing:
            return existing

        customer = await self.client.create_customer(email, name, {self.user_key: user_id})

        async with self.session_factory() as session:
            await sync_customer(session, customer, self.user_key)
            await session.commit()

        logger.info("stripe_customer_created", user_id=user_id, customer_id=customer["id"])
        return customer["id"]

    async def create_checkout_session(
        self,
        user_id: str,
        email: str,
        name: str | None,
        price_id: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> dict:
        customer_id = await self.get_or_create_customer(user_id, email, name)
        session = await self.client.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url or f"{self.frontend_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{self.frontend_url}/pricing",
            metadata={self.user_key: user_id},
        )
        logger.info("checkout_session_created", user_id=user_id, session_id=session["id"], price_id=price_id)
        return session

    async def list_subscriptions(self, user_id: str) -> list[StripeSubscription]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StripeSubscription)
                .where(StripeSubscription.user_id == user_id)
                .order_by(StripeSubscription.created_at.desc())
            )
            return list(result.scalars().all())

    async def cancel_subscription(self, user_id: str, subscription_id: str, immediately: bool = False) -> StripeSubscription:
        """Cancel at Stripe, then store the subscription object Stripe returned.

        Raises:
            NotFoundError: subscription unknown or owned by another user
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(StripeSubscription).where(
                    StripeSubscription.id == subscription_id,
                    StripeSubscription.user_id == user_id,
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Subscription '{subscription_id}' not found")

        if immediately:
            subscription = await self.client.cancel_subscription(subscription_id)
        else:
            subscription = await self.client.set_cancel_at_period_end(subscription_id, True)

        async with self.session_factory() as session:
            await sync_subscription(session, subscription)
            await session.commit()
            row = await session.get(StripeSubscription, subscription_id, populate_existing=True)

        logger.info(
            "subscription_cancel_requested",
            user_id=user_id,
            subscription_id=subscription_id,
            immediately=immediately,
            status=row.status,
        )
        return row

    async def list_prices(self, product_id: str) -> list[dict]:
        return await self.client.list_prices(product_id)

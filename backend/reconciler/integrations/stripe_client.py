"""Thin async adapter over the Stripe SDK.

Every method returns plain dicts so the synchronizers never touch SDK objects,
and every Stripe failure surfaces as ``ProviderError``.
"""

from typing import Any

import stripe
import structlog

from reconciler.core.config import Settings
from reconciler.core.exceptions import ProviderError

logger = structlog.get_logger(__name__)


def _to_dict(obj: Any) -> dict:
    return obj.to_dict() if obj is not None else {}


class StripeClient:
    """Reads and writes against the Stripe API using the async SDK methods."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeClient":
        return cls(settings.stripe_secret_key)

    async def _call(self, operation: str, method, *args, **kwargs) -> Any:
        try:
            return await method(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_api_error",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
                http_status=getattr(exc, "http_status", None),
            )
            raise ProviderError(operation, str(exc)) from exc

    # ── Reads ───────────────────────────────────────────────────────

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        sub = await self._call(
            "retrieve_subscription",
            stripe.Subscription.retrieve_async,
            subscription_id,
            expand=["items.data.price"],
        )
        return _to_dict(sub)

    async def retrieve_invoice(self, invoice_id: str) -> dict:
        return _to_dict(await self._call("retrieve_invoice", stripe.Invoice.retrieve_async, invoice_id))

    async def retrieve_customer(self, customer_id: str) -> dict:
        return _to_dict(await self._call("retrieve_customer", stripe.Customer.retrieve_async, customer_id))

    async def list_customer_subscriptions(self, customer_id: str, limit: int = 1) -> list[dict]:
        """Newest subscriptions for a customer, in any status."""
        page = await self._call(
            "list_subscriptions",
            stripe.Subscription.list_async,
            customer=customer_id,
            status="all",
            limit=limit,
            expand=["data.items.data.price"],
        )
        return [_to_dict(s) for s in page.data]

    async def list_customer_invoices(self, customer_id: str, limit: int = 10) -> list[dict]:
        page = await self._call("list_invoices", stripe.Invoice.list_async, customer=customer_id, limit=limit)
        return [_to_dict(i) for i in page.data]

    async def list_prices(self, product_id: str) -> list[dict]:
        """Active prices of a product."""
        page = await self._call("list_prices", stripe.Price.list_async, product=product_id, active=True, limit=100)
        return [_to_dict(p) for p in page.data]

    # ── Writes ──────────────────────────────────────────────────────

    async def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> dict:
        params: dict[str, Any] = {"email": email, "metadata": metadata}
        if name:
            params["name"] = name
        return _to_dict(await self._call("create_customer", stripe.Customer.create_async, **params))

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> dict:
        session = await self._call(
            "create_checkout_session",
            stripe.checkout.Session.create_async,
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return _to_dict(session)

    async def cancel_subscription(self, subscription_id: str) -> dict:
        return _to_dict(await self._call("cancel_subscription", stripe.Subscription.cancel_async, subscription_id))

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool = True) -> dict:
        sub = await self._call(
            "set_cancel_at_period_end",
            stripe.Subscription.modify_async,
            subscription_id,
            cancel_at_period_end=cancel,
        )
        return _to_dict(sub)

"""Shared test fixtures: per-test SQLite database, fake Stripe adapter, Stripe object builders."""

import copy
import hashlib
import hmac
import json
import time
from datetime import UTC, datetime, timedelta

import pytest

from reconciler.core.exceptions import ProviderError
from reconciler.db.base import Database

WEBHOOK_SECRET = "whsec_test_secret"

T0 = int(datetime(2026, 1, 1, tzinfo=UTC).timestamp())
T1 = int((datetime(2026, 1, 1, tzinfo=UTC) + timedelta(days=30)).timestamp())


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def database(tmp_path):
    """File-backed SQLite database, created fresh for every test."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'reconciler.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Stripe adapter
# ---------------------------------------------------------------------------


class FakeStripeClient:
    """In-memory stand-in for StripeClient with the same async, dict-returning surface.

    Records every call in ``calls`` so tests can assert which provider
    operations ran. Set ``fail`` to an operation name to make that call raise
    ProviderError.
    """

    def __init__(self):
        self.subscriptions: dict[str, dict] = {}
        self.customers: dict[str, dict] = {}
        # keyed by customer id, newest first like Stripe lists them
        self.invoices: dict[str, list[dict]] = {}
        self.prices: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self.fail: str | None = None
        self._customer_seq = 0

    def _record(self, operation: str, *args):
        self.calls.append((operation, *args))
        if self.fail == operation:
            raise ProviderError(operation, "simulated outage")

    def called(self, operation: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == operation]

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        self._record("retrieve_subscription", subscription_id)
        if subscription_id not in self.subscriptions:
            raise ProviderError("retrieve_subscription", f"No such subscription: '{subscription_id}'")
        return copy.deepcopy(self.subscriptions[subscription_id])

    async def retrieve_invoice(self, invoice_id: str) -> dict:
        self._record("retrieve_invoice", invoice_id)
        for invoices in self.invoices.values():
            for invoice in invoices:
                if invoice["id"] == invoice_id:
                    return copy.deepcopy(invoice)
        raise ProviderError("retrieve_invoice", f"No such invoice: '{invoice_id}'")

    async def retrieve_customer(self, customer_id: str) -> dict:
        self._record("retrieve_customer", customer_id)
        if customer_id not in self.customers:
            raise ProviderError("retrieve_customer", f"No such customer: '{customer_id}'")
        return copy.deepcopy(self.customers[customer_id])

    async def list_customer_subscriptions(self, customer_id: str, limit: int = 1) -> list[dict]:
        self._record("list_subscriptions", customer_id)
        subs = [s for s in self.subscriptions.values() if s["customer"] == customer_id]
        subs.sort(key=lambda s: s.get("created") or 0, reverse=True)
        return copy.deepcopy(subs[:limit])

    async def list_customer_invoices(self, customer_id: str, limit: int = 10) -> list[dict]:
        self._record("list_invoices", customer_id)
        return copy.deepcopy(self.invoices.get(customer_id, [])[:limit])

    async def list_prices(self, product_id: str) -> list[dict]:
        self._record("list_prices", product_id)
        return copy.deepcopy(self.prices.get(product_id, []))

    async def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> dict:
        self._record("create_customer", email)
        self._customer_seq += 1
        return build_customer(f"cus_new_{self._customer_seq}", metadata.get("user_id"), email, name=name)

    async def create_checkout_session(self, customer_id, price_id, success_url, cancel_url, metadata) -> dict:
        self._record("create_checkout_session", customer_id, price_id, success_url, cancel_url)
        return {
            "id": "cs_test_1",
            "object": "checkout.session",
            "customer": customer_id,
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
            "metadata": metadata,
        }

    async def cancel_subscription(self, subscription_id: str) -> dict:
        self._record("cancel_subscription", subscription_id)
        sub = self.subscriptions[subscription_id]
        sub.update(status="canceled", canceled_at=T0 + 3600, ended_at=T0 + 3600)
        return copy.deepcopy(sub)

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool = True) -> dict:
        self._record("set_cancel_at_period_end", subscription_id, cancel)
        sub = self.subscriptions[subscription_id]
        sub.update(cancel_at_period_end=cancel, cancel_at=sub["items"]["data"][0]["current_period_end"] if cancel else None)
        return copy.deepcopy(sub)


@pytest.fixture
def stripe_client():
    return FakeStripeClient()


# ---------------------------------------------------------------------------
# Stripe object builders
# ---------------------------------------------------------------------------


def build_customer(customer_id="cus_1", user_id="user_1", email="founder@example.com", **overrides) -> dict:
    customer = {
        "id": customer_id,
        "object": "customer",
        "email": email,
        "name": "Test Founder",
        "created": T0,
        "metadata": {"user_id": user_id} if user_id else {},
        "invoice_settings": {"default_payment_method": None},
    }
    customer.update(overrides)
    return customer


def build_subscription(
    subscription_id="sub_1",
    customer="cus_1",
    status="active",
    period=(T0, T1),
    price_id="price_pro_monthly",
    product_id="prod_pro",
    **overrides,
) -> dict:
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "created": T0,
        "current_period_start": period[0],
        "current_period_end": period[1],
        "cancel_at_period_end": False,
        "cancel_at": None,
        "canceled_at": None,
        "ended_at": None,
        "trial_start": None,
        "trial_end": None,
        "metadata": {},
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_1",
                    "quantity": 1,
                    "current_period_start": period[0],
                    "current_period_end": period[1],
                    "price": {"id": price_id, "product": product_id, "currency": "usd", "unit_amount": 2900},
                }
            ],
        },
    }
    subscription.update(overrides)
    return subscription


def build_invoice(invoice_id="in_1", customer="cus_1", subscription="sub_1", status="paid", **overrides) -> dict:
    invoice = {
        "id": invoice_id,
        "object": "invoice",
        "customer": customer,
        "subscription": subscription,
        "status": status,
        "amount_due": 2900,
        "amount_paid": 2900 if status == "paid" else 0,
        "currency": "usd",
        "period_start": T0,
        "period_end": T1,
        "hosted_invoice_url": f"https://invoice.stripe.com/i/{invoice_id}",
        "invoice_pdf": f"https://pay.stripe.com/invoice/{invoice_id}/pdf",
        "attempt_count": 1,
        "created": T0,
    }
    invoice.update(overrides)
    return invoice


def build_event(event_id: str, event_type: str, obj: dict) -> dict:
    """Minimal Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": T0,
        "api_version": "2024-06-20",
        "livemode": False,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a stripe-signature header the way Stripe does (HMAC-SHA256 over "t.payload")."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def encode_event(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def make_customer():
    return build_customer


@pytest.fixture
def make_subscription():
    return build_subscription


@pytest.fixture
def make_invoice():
    return build_invoice


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def signed_delivery():
    """Encode an event and sign it with the test webhook secret. Returns (body, header)."""

    def _signed(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
        body = encode_event(event)
        return body, sign_payload(body, secret)

    return _signed


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def period() -> tuple[int, int]:
    """(t0, t1) epoch seconds used as the default billing period of built subscriptions."""
    return T0, T1

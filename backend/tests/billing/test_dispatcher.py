"""Tests for ReconciliationDispatcher event routing."""

import pytest
from sqlalchemy import func, select

from reconciler.billing.dispatcher import ReconciliationDispatcher
from reconciler.billing.events import StripeEventEnvelope, StripeEventType
from reconciler.billing.synchronizers import sync_customer, sync_subscription
from reconciler.core.exceptions import DanglingReferenceError
from reconciler.db.models import StripeCustomer, StripeInvoice, StripeSubscription

pytestmark = pytest.mark.unit


@pytest.fixture
def envelope(make_event):
    def _envelope(event_type: str, obj: dict, event_id: str = "evt_dispatch_001") -> StripeEventEnvelope:
        return StripeEventEnvelope.model_validate(make_event(event_id, event_type, obj))

    return _envelope


@pytest.fixture
async def seeded(db_session, make_customer):
    await sync_customer(db_session, make_customer())
    await db_session.commit()


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


class TestSubscriptionEvents:
    @pytest.mark.parametrize(
        "event_type",
        [
            "customer.subscription.created",
            "customer.subscription.updated",
            "customer.subscription.paused",
            "customer.subscription.resumed",
        ],
    )
    async def test_syncs_from_payload_without_refetch(self, db_session, seeded, envelope, make_subscription, event_type):
        dispatcher = ReconciliationDispatcher(None, refetch=False)

        action = await dispatcher.dispatch(db_session, envelope(event_type, make_subscription(status="paused")))
        await db_session.commit()

        assert action == "subscription_synced"
        row = await db_session.get(StripeSubscription, "sub_1")
        assert row.status == "paused"

    async def test_refetch_prefers_provider_state(self, db_session, seeded, envelope, make_subscription, stripe_client):
        """A stale event copy is replaced by the subscription Stripe returns now."""
        stripe_client.subscriptions["sub_1"] = make_subscription(status="past_due")
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=True)

        await dispatcher.dispatch(
            db_session, envelope("customer.subscription.updated", make_subscription(status="active"))
        )
        await db_session.commit()

        row = await db_session.get(StripeSubscription, "sub_1")
        assert row.status == "past_due"
        assert stripe_client.called("retrieve_subscription") == [("retrieve_subscription", "sub_1")]

    async def test_deleted_sets_terminal_state_without_refetch(
        self, db_session, seeded, envelope, make_subscription, stripe_client
    ):
        await sync_subscription(db_session, make_subscription(status="active"))
        await db_session.commit()
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=True)

        action = await dispatcher.dispatch(
            db_session, envelope("customer.subscription.deleted", make_subscription(status="canceled"))
        )
        await db_session.commit()

        assert action == "subscription_canceled"
        row = await db_session.get(StripeSubscription, "sub_1", populate_existing=True)
        assert row.status == "canceled"
        assert row.canceled_at is not None
        assert stripe_client.calls == []

    async def test_deleted_unknown_subscription_is_noop(self, db_session, envelope, make_subscription):
        dispatcher = ReconciliationDispatcher(None)

        action = await dispatcher.dispatch(
            db_session, envelope("customer.subscription.deleted", make_subscription(subscription_id="sub_gone"))
        )

        assert action == "subscription_canceled"
        assert await _count(db_session, StripeSubscription) == 0

    async def test_missing_customer_raises_dangling(self, db_session, envelope, make_subscription):
        dispatcher = ReconciliationDispatcher(None, refetch=False)

        with pytest.raises(DanglingReferenceError):
            await dispatcher.dispatch(
                db_session, envelope("customer.subscription.created", make_subscription(customer="cus_later"))
            )


class TestRefetch:
    async def test_late_payment_failed_does_not_regress_paid_invoice(
        self, db_session, seeded, envelope, make_invoice, stripe_client
    ):
        stripe_client.invoices["cus_1"] = [make_invoice(status="paid")]
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=True)

        await dispatcher.dispatch(db_session, envelope("invoice.paid", make_invoice(status="paid"), "evt_paid"))
        await dispatcher.dispatch(
            db_session, envelope("invoice.payment_failed", make_invoice(status="open"), "evt_failed_late")
        )
        await db_session.commit()

        row = await db_session.get(StripeInvoice, "in_1")
        assert row.status == "paid"
        assert row.paid is True
        assert stripe_client.called("retrieve_invoice") == [("retrieve_invoice", "in_1")] * 2

    async def test_invoice_payload_applied_when_refetch_disabled(
        self, db_session, seeded, envelope, make_invoice, stripe_client
    ):
        stripe_client.invoices["cus_1"] = [make_invoice(status="paid")]
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=False)

        await dispatcher.dispatch(db_session, envelope("invoice.payment_failed", make_invoice(status="open")))
        await db_session.commit()

        assert (await db_session.get(StripeInvoice, "in_1")).paid is False
        assert stripe_client.calls == []

    async def test_customer_update_uses_provider_copy(self, db_session, envelope, make_customer, stripe_client):
        stripe_client.customers["cus_1"] = make_customer(name="Current Name")
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=True)

        action = await dispatcher.dispatch(db_session, envelope("customer.updated", make_customer(name="Old Name")))
        await db_session.commit()

        assert action == "customer_synced"
        assert (await db_session.get(StripeCustomer, "cus_1")).name == "Current Name"
        assert stripe_client.called("retrieve_customer") == [("retrieve_customer", "cus_1")]

    async def test_customer_update_after_deletion_is_skipped(
        self, db_session, seeded, envelope, make_customer, stripe_client
    ):
        stripe_client.customers["cus_1"] = {"id": "cus_1", "object": "customer", "deleted": True}
        dispatcher = ReconciliationDispatcher(stripe_client, refetch=True)

        action = await dispatcher.dispatch(db_session, envelope("customer.updated", make_customer(name="Stale")))
        await db_session.commit()

        assert action == "customer_skipped"
        assert (await db_session.get(StripeCustomer, "cus_1")).name == "Test Founder"


class TestOtherEvents:
    @pytest.mark.parametrize(
        "event_type",
        ["invoice.paid", "invoice.payment_succeeded", "invoice.payment_failed", "invoice.payment_action_required"],
    )
    async def test_invoice_events_sync(self, db_session, seeded, envelope, make_invoice, event_type):
        action = await ReconciliationDispatcher(None).dispatch(db_session, envelope(event_type, make_invoice()))
        await db_session.commit()

        assert action == "invoice_synced"
        assert await _count(db_session, StripeInvoice) == 1

    async def test_customer_event_with_user_id_syncs(self, db_session, envelope, make_customer):
        action = await ReconciliationDispatcher(None).dispatch(
            db_session, envelope("customer.created", make_customer(customer_id="cus_2", user_id="user_2"))
        )
        await db_session.commit()

        assert action == "customer_synced"
        assert (await db_session.get(StripeCustomer, "cus_2")).user_id == "user_2"

    async def test_customer_event_without_user_id_skips(self, db_session, envelope, make_customer):
        action = await ReconciliationDispatcher(None).dispatch(
            db_session, envelope("customer.updated", make_customer(user_id=None))
        )

        assert action == "customer_skipped"
        assert await _count(db_session, StripeCustomer) == 0

    async def test_customer_deleted_keeps_row(self, db_session, seeded, envelope, make_customer):
        action = await ReconciliationDispatcher(None).dispatch(
            db_session, envelope("customer.deleted", make_customer())
        )
        await db_session.commit()

        assert action == "customer_deleted"
        assert await _count(db_session, StripeCustomer) == 1
        row = await db_session.get(StripeCustomer, "cus_1", populate_existing=True)
        assert row.deleted_at is not None

    @pytest.mark.parametrize(
        "event_type, obj",
        [
            ("checkout.session.completed", {"id": "cs_1", "customer": "cus_1", "subscription": "sub_1"}),
            ("payment_intent.succeeded", {"id": "pi_1", "status": "succeeded", "amount": 2900}),
            ("payment_intent.payment_failed", {"id": "pi_2", "status": "requires_payment_method"}),
        ],
    )
    async def test_logged_only_events_write_nothing(self, db_session, envelope, event_type, obj):
        action = await ReconciliationDispatcher(None).dispatch(db_session, envelope(event_type, obj))

        assert action == "logged"
        assert await _count(db_session, StripeSubscription) == 0
        assert await _count(db_session, StripeCustomer) == 0

    async def test_unknown_event_type_ignored(self, db_session, envelope):
        action = await ReconciliationDispatcher(None).dispatch(
            db_session, envelope("radar.early_fraud_warning.created", {"id": "issfr_1"})
        )
        assert action == "ignored"


def test_every_event_type_round_trips_through_parse():
    for member in StripeEventType:
        assert StripeEventType.parse(member.value) is member
    assert StripeEventType.parse("account.updated") is None

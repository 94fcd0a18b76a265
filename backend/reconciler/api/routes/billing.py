"""Billing routes: Stripe Checkout, subscriptions, post-checkout sync, and prices."""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from reconciler.api.dependencies import get_billing_service, get_sync_service
from reconciler.core.auth import AuthenticatedUser, require_auth
from reconciler.core.exceptions import DanglingReferenceError, MalformedPayloadError, NotFoundError, ProviderError
from reconciler.schemas.billing import (
    CancelSubscriptionRequest,
    CheckoutRequest,
    CheckoutResponse,
    PriceResponse,
    SubscriptionResponse,
    SyncAfterCheckoutResponse,
)
from reconciler.services.billing_service import BillingService
from reconciler.services.sync_service import StripeSyncService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/billing/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: AuthenticatedUser = Depends(require_auth),
    service: BillingService = Depends(get_billing_service),
):
    """Create a subscription-mode Checkout session, creating the Stripe customer on first use."""
    if not user.email:
        raise HTTPException(status_code=400, detail="An email address is required to start checkout")

    try:
        session = await service.create_checkout_session(
            user.user_id,
            user.email,
            user.name,
            body.price_id,
            success_url=body.success_url,
            cancel_url=body.cancel_url,
        )
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return CheckoutResponse(session_id=session["id"], url=session.get("url"))


@router.get("/billing/subscriptions", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    user: AuthenticatedUser = Depends(require_auth),
    service: BillingService = Depends(get_billing_service),
):
    """Return the user's locally synchronized subscriptions."""
    rows = await service.list_subscriptions(user.user_id)
    return [SubscriptionResponse.model_validate(r) for r in rows]


@router.post("/billing/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str,
    body: CancelSubscriptionRequest,
    user: AuthenticatedUser = Depends(require_auth),
    service: BillingService = Depends(get_billing_service),
):
    """Cancel now or at the end of the current period (default)."""
    try:
        row = await service.cancel_subscription(user.user_id, subscription_id, immediately=body.immediately)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (ProviderError, MalformedPayloadError) as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return SubscriptionResponse.model_validate(row)


@router.post("/billing/sync-after-checkout", response_model=SyncAfterCheckoutResponse)
async def sync_after_checkout(
    user: AuthenticatedUser = Depends(require_auth),
    service: StripeSyncService = Depends(get_sync_service),
):
    """Pull the user's subscription and invoices from Stripe right after checkout.

    Independent of webhook delivery order; safe to call repeatedly.
    """
    customer_id = await service.customer_id_for_user(user.user_id)
    if customer_id is None:
        raise HTTPException(status_code=404, detail="No Stripe customer found for user")

    try:
        state = await service.sync_customer_from_stripe(customer_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except DanglingReferenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (ProviderError, MalformedPayloadError) as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return SyncAfterCheckoutResponse(
        synced=True,
        subscription=state if state.status != "none" else None,
    )


@router.get("/billing/products/{product_id}/prices", response_model=list[PriceResponse])
async def list_product_prices(
    product_id: str,
    service: BillingService = Depends(get_billing_service),
):
    """Active prices for a Stripe product."""
    try:
        prices = await service.list_prices(product_id)
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return [
        PriceResponse(
            id=p["id"],
            product=p["product"] if isinstance(p["product"], str) else p["product"]["id"],
            currency=p["currency"],
            unit_amount=p.get("unit_amount"),
            interval=(p.get("recurring") or {}).get("interval"),
            interval_count=(p.get("recurring") or {}).get("interval_count"),
            trial_period_days=(p.get("recurring") or {}).get("trial_period_days"),
        )
        for p in prices
    ]

"""FastAPI dependencies resolving app-scoped resources from ``app.state``."""

from fastapi import Depends, Request

from reconciler.billing.dispatcher import ReconciliationDispatcher
from reconciler.core.config import Settings
from reconciler.db.base import Database
from reconciler.integrations.stripe_client import StripeClient
from reconciler.services.billing_service import BillingService
from reconciler.services.sync_service import StripeSyncService
from reconciler.services.webhook_service import WebhookService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database not initialized")
    return database


def get_stripe_client(request: Request) -> StripeClient:
    return request.app.state.stripe_client


def get_webhook_service(
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
    client: StripeClient = Depends(get_stripe_client),
) -> WebhookService:
    dispatcher = ReconciliationDispatcher(
        client,
        refetch=settings.stripe_sync_refetch,
        user_key=settings.stripe_user_metadata_key,
    )
    return WebhookService(
        database.session_factory,
        dispatcher,
        webhook_secret=settings.stripe_webhook_secret,
        tolerance=settings.stripe_webhook_tolerance,
    )


def get_sync_service(
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
    client: StripeClient = Depends(get_stripe_client),
) -> StripeSyncService:
    return StripeSyncService(database.session_factory, client, invoice_limit=settings.stripe_invoice_sync_limit)


def get_billing_service(
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
    client: StripeClient = Depends(get_stripe_client),
) -> BillingService:
    return BillingService(
        database.session_factory,
        client,
        user_key=settings.stripe_user_metadata_key,
        frontend_url=settings.frontend_url,
    )

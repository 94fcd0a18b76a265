"""Stripe webhook endpoint and operational event routes."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from reconciler.api.dependencies import get_app_settings, get_database, get_webhook_service
from reconciler.billing.event_store import WebhookEventStore
from reconciler.core.auth import AuthenticatedUser, require_admin
from reconciler.core.config import Settings
from reconciler.core.exceptions import (
    DanglingReferenceError,
    InvalidSignatureError,
    MalformedPayloadError,
    NotFoundError,
    ProcessingFailureError,
)
from reconciler.db.base import Database
from reconciler.schemas.billing import WebhookEventRecord, WebhookEventSummary, WebhookResponse
from reconciler.services.webhook_service import WebhookResult, WebhookService

logger = structlog.get_logger(__name__)

# Stripe posts to the bare path registered in its dashboard; the admin routes live under /api
inbound_router = APIRouter()
router = APIRouter()


def _response(result: WebhookResult) -> WebhookResponse:
    return WebhookResponse(
        received=True,
        event=WebhookEventSummary(id=result.event_id, type=result.event_type, processed=result.processed),
    )


@inbound_router.post("/webhooks/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    service: WebhookService = Depends(get_webhook_service),
):
    """Handle Stripe webhook events with signature verification and idempotency.

    Served at `POST /webhooks/stripe`, outside the `/api` prefix. Events whose
    object can never be synced are acknowledged with `processed: false` so
    Stripe stops redelivering them.
    """
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Stripe webhook endpoint is not configured")

    # Raw bytes: the signature covers the exact body Stripe sent
    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        result = await service.handle(body, sig_header)
    except InvalidSignatureError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except MalformedPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DanglingReferenceError as exc:
        # Left unprocessed; Stripe redelivers once the parent row has arrived
        raise HTTPException(status_code=500, detail=f"Webhook processing deferred: {exc}")
    except ProcessingFailureError:
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return _response(result)


@router.get("/webhooks/stripe/events", response_model=list[WebhookEventRecord])
async def list_webhook_events(
    processed: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    database: Database = Depends(get_database),
    admin: AuthenticatedUser = Depends(require_admin),
):
    """Recently received Stripe events, newest first."""
    async with database.session_factory() as session:
        events = await WebhookEventStore(session).list_events(processed=processed, limit=limit)
    return [WebhookEventRecord.model_validate(e) for e in events]


@router.post("/webhooks/stripe/events/{event_id}/replay", response_model=WebhookResponse)
async def replay_webhook_event(
    event_id: str,
    service: WebhookService = Depends(get_webhook_service),
    admin: AuthenticatedUser = Depends(require_admin),
):
    """Re-run a stored event that has not been processed yet."""
    try:
        result = await service.replay(event_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except DanglingReferenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ProcessingFailureError:
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    logger.info("stripe_event_replayed", event_id=event_id, admin_id=admin.user_id, processed=result.processed)
    return _response(result)

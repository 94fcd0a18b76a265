"""WebhookService: verify, gate, dispatch, and record Stripe webhook events."""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog.contextvars import bound_contextvars

from reconciler.billing.dispatcher import ReconciliationDispatcher
from reconciler.billing.event_store import WebhookEventStore
from reconciler.billing.events import StripeEventEnvelope
from reconciler.billing.signature import verify_stripe_webhook
from reconciler.core.exceptions import (
    DanglingReferenceError,
    MalformedPayloadError,
    NotFoundError,
    ProcessingFailureError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    event_id: str
    event_type: str
    processed: bool
    duplicate: bool = False
    action: str | None = None


class WebhookService:
    """Runs one webhook delivery through the reconciliation pipeline.

    Flow: signature -> processed? (short-circuit) -> record row -> dispatch
    + mark processed in one transaction. A failed dispatch rolls back every
    projection write, notes the error on the event row, and leaves it
    unprocessed so Stripe's redelivery retries it. A signed object that can
    never be synced (no customer, no items) is recorded the same way but
    acknowledged, since redelivering it would fail identically.

    Everything logged while an event is in flight carries its event_id and
    event_type through structlog contextvars.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: ReconciliationDispatcher,
        *,
        webhook_secret: str,
        tolerance: int = 300,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    async def handle(self, payload: bytes, signature: str | None) -> WebhookResult:
        """Verify and process a raw webhook delivery.

        Raises:
            InvalidSignatureError / MalformedPayloadError: envelope rejected before any state change
            DanglingReferenceError / ProcessingFailureError: event left unprocessed

        A verified event whose object cannot be synced returns processed=False.
        """
        event = verify_stripe_webhook(payload, signature, self.webhook_secret, self.tolerance)
        raw_payload = json.loads(payload)
        logger.info("stripe_webhook_received", event_id=event.id, event_type=event.type)
        return await self.process(event, raw_payload)

    async def process(self, event: StripeEventEnvelope, raw_payload: dict[str, Any]) -> WebhookResult:
        with bound_contextvars(event_id=event.id, event_type=event.type):
            async with self.session_factory() as session:
                store = WebhookEventStore(session)
                if await store.is_processed(event.id):
                    logger.info("stripe_duplicate_event_ignored")
                    return WebhookResult(event.id, event.type, processed=True, duplicate=True)

                created = await store.record_if_new(
                    event.id,
                    event.type,
                    raw_payload,
                    datetime.now(UTC),
                    api_version=event.api_version,
                    livemode=event.livemode,
                )
                await session.commit()

            if not created:
                logger.info("stripe_event_retry")

            return await self._apply(event)

    async def replay(self, event_id: str) -> WebhookResult:
        """Re-run a stored event. Its signature was verified when it was received."""
        async with self.session_factory() as session:
            row = await WebhookEventStore(session).get(event_id)
            if row is None:
                raise NotFoundError(f"Webhook event '{event_id}' not found")
            if row.processed:
                return WebhookResult(row.id, row.type, processed=True, duplicate=True)
            event = StripeEventEnvelope.model_validate(row.payload)

        with bound_contextvars(event_id=event.id, event_type=event.type):
            logger.info("stripe_event_replay")
            return await self._apply(event)

    async def _record_failure(self, event_id: str, exc: Exception) -> None:
        async with self.session_factory() as session:
            await WebhookEventStore(session).record_failure(event_id, f"{type(exc).__name__}: {exc}")
            await session.commit()

    async def _apply(self, event: StripeEventEnvelope) -> WebhookResult:
        try:
            async with self.session_factory() as session:
                action = await self.dispatcher.dispatch(session, event)
                first = await WebhookEventStore(session).mark_processed(event.id)
                await session.commit()
        except MalformedPayloadError as exc:
            logger.warning("stripe_event_rejected", error=str(exc))
            await self._record_failure(event.id, exc)
            return WebhookResult(event.id, event.type, processed=False, action="rejected")
        except Exception as exc:
            logger.warning(
                "stripe_event_processing_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._record_failure(event.id, exc)
            if isinstance(exc, DanglingReferenceError):
                raise
            raise ProcessingFailureError(event.id, exc) from exc

        if not first:
            # A concurrent delivery of the same event finished first; our upserts were no-ops
            logger.info("stripe_event_already_marked")
        logger.info("stripe_event_processed", action=action)
        return WebhookResult(event.id, event.type, processed=True, action=action)

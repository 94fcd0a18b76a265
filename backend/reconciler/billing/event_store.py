"""Idempotency gate over the stripe_webhook_events table."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.db.models.webhook_event import StripeWebhookEvent
from reconciler.db.upsert import insert_or_ignore


class WebhookEventStore:
    """Reads and writes event ledger rows inside the caller's session.

    The caller owns the transaction, so ``mark_processed`` commits together
    with whatever projection writes the event produced.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, event_id: str) -> StripeWebhookEvent | None:
        return await self.session.get(StripeWebhookEvent, event_id, populate_existing=True)

    async def is_processed(self, event_id: str) -> bool:
        result = await self.session.execute(
            select(StripeWebhookEvent.processed).where(StripeWebhookEvent.id == event_id)
        )
        return bool(result.scalar_one_or_none())

    async def record_if_new(
        self,
        event_id: str,
        event_type: str,
        raw_payload: dict[str, Any],
        received_at: datetime | None = None,
        *,
        api_version: str | None = None,
        livemode: bool = False,
    ) -> bool:
        """Insert the event row unless it already exists. Returns True on first sighting."""
        return await insert_or_ignore(
            self.session,
            StripeWebhookEvent,
            {
                "id": event_id,
                "type": event_type,
                "api_version": api_version,
                "livemode": livemode,
                "payload": raw_payload,
                "processed": False,
                "attempt_count": 0,
                "received_at": received_at or datetime.now(UTC),
            },
        )

    async def mark_processed(self, event_id: str, processed_at: datetime | None = None) -> bool:
        """Flip processed to true. Returns False if another delivery already did."""
        result = await self.session.execute(
            update(StripeWebhookEvent)
            .where(StripeWebhookEvent.id == event_id, StripeWebhookEvent.processed.is_(False))
            .values(
                processed=True,
                processed_at=processed_at or datetime.now(UTC),
                processing_error=None,
                attempt_count=StripeWebhookEvent.attempt_count + 1,
            )
        )
        return result.rowcount == 1

    async def record_failure(self, event_id: str, error: str) -> None:
        """Keep the event unprocessed and note why the last attempt failed."""
        await self.session.execute(
            update(StripeWebhookEvent)
            .where(StripeWebhookEvent.id == event_id, StripeWebhookEvent.processed.is_(False))
            .values(
                processing_error=error[:2000],
                attempt_count=StripeWebhookEvent.attempt_count + 1,
            )
        )

    async def list_events(self, processed: bool | None = None, limit: int = 50) -> list[StripeWebhookEvent]:
        """Most recently received events, optionally filtered by processed flag."""
        stmt = select(StripeWebhookEvent).order_by(StripeWebhookEvent.received_at.desc()).limit(limit)
        if processed is not None:
            stmt = stmt.where(StripeWebhookEvent.processed.is_(processed))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

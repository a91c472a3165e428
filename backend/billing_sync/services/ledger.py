"""EventLedger — deduplicates inbound Stripe events by provider event ID.

The ledger never orders events for the same object; it only answers whether a
given event ID has been seen before. Claims rely on the primary key of
``stripe_webhook_events`` rather than on any application-level lock.
"""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.core.exceptions import LedgerUnavailableError
from billing_sync.db.models.stripe_event import StripeWebhookEvent

logger = structlog.get_logger(__name__)


class EventLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record_event(self, event: dict) -> bool:
        """Claim an event. Return True if it is new, False if already seen.

        A duplicate leaves the original row untouched, including its
        ``processed`` flag.

        Raises:
            LedgerUnavailableError: The ledger store could not be consulted
        """
        async with self.session_factory() as session:
            try:
                session.add(
                    StripeWebhookEvent(
                        event_id=event["id"],
                        event_type=event["type"],
                        payload=event,
                    )
                )
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                return False
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("ledger_record_failed", event_id=event.get("id"), error=str(e))
                raise LedgerUnavailableError(f"Event ledger unavailable: {e}") from e

    async def mark_processed(self, event_id: str, ok: bool, error: str | None = None) -> None:
        """Record the terminal outcome of a claimed event.

        The row stays in place whatever the outcome, so later deliveries of the
        same ID keep short-circuiting.
        """
        async with self.session_factory() as session:
            await session.execute(
                update(StripeWebhookEvent)
                .where(StripeWebhookEvent.event_id == event_id)
                .values(processed=ok, error=error, processed_at=datetime.now(UTC))
            )
            await session.commit()

    async def get_event(self, event_id: str) -> StripeWebhookEvent | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StripeWebhookEvent).where(StripeWebhookEvent.event_id == event_id)
            )
            return result.scalar_one_or_none()

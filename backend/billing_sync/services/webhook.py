"""WebhookProcessor — gate, mirror, side effects, outcome.

Order for every event:
1. EventLedger claims the event ID (duplicates stop here)
2. EntityMirror upserts the payload for mirrored event types
3. Post-upsert hooks registered by event-type prefix run best-effort
4. The outcome is written back to the ledger, whatever happened above
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from billing_sync.domain.events import INFORMATIONAL_EVENTS, mirror_kind_for
from billing_sync.services.ledger import EventLedger
from billing_sync.services.lifecycle import LifecycleSynchronizer
from billing_sync.services.mirror import EntityMirror

logger = structlog.get_logger(__name__)

PostUpsertHook = Callable[[str, dict], Awaitable[object]]


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    processed: bool
    error: str | None = None
    reason: str | None = None

    def to_response(self) -> dict:
        body = {
            "received": True,
            "processed": self.processed,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "error": self.error,
        }
        if self.reason:
            body["reason"] = self.reason
        return body


class WebhookProcessor:
    def __init__(self, ledger: EventLedger, mirror: EntityMirror, lifecycle: LifecycleSynchronizer):
        self.ledger = ledger
        self.mirror = mirror
        self.lifecycle = lifecycle
        # (event-type prefix, hook); every matching hook runs, in order
        self.hooks: list[tuple[str, PostUpsertHook]] = [
            ("customer.subscription.", self._subscription_hook),
            ("payment_intent.", self._payment_hook),
            ("invoice.payment_", self._payment_hook),
        ]

    async def process(self, event: dict) -> WebhookResult:
        """Process one event envelope ``{id, type, data: {object}}``.

        Raises:
            LedgerUnavailableError: The ledger gate could not be consulted; no
                side effect has run and the caller should ask for redelivery
        """
        event_id = event["id"]
        event_type = event["type"]
        obj = event["data"]["object"]

        logger.info("stripe_event_received", event_type=event_type, event_id=event_id)

        if not await self.ledger.record_event(event):
            logger.info("stripe_duplicate_event_ignored", event_id=event_id, event_type=event_type)
            return WebhookResult(
                event_id=event_id,
                event_type=event_type,
                processed=False,
                reason="already_processed",
            )

        processed = False
        error: str | None = None
        try:
            await self._mirror(event_type, obj)
            processed = True
            await self._run_hooks(event_type, obj)
        except Exception as e:
            logger.error(
                "stripe_event_processing_failed",
                event_id=event_id,
                event_type=event_type,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            processed = False
            error = str(e) or type(e).__name__
        finally:
            await self._record_outcome(event_id, processed, error)

        return WebhookResult(event_id=event_id, event_type=event_type, processed=processed, error=error)

    async def _mirror(self, event_type: str, obj: dict) -> None:
        kind = mirror_kind_for(event_type)
        if kind is not None:
            await self.mirror.upsert(kind, obj)
        elif event_type in INFORMATIONAL_EVENTS:
            logger.info(
                "stripe_informational_event",
                event_type=event_type,
                object_id=obj.get("id"),
                customer_id=obj.get("customer"),
            )
        else:
            logger.info("stripe_unhandled_event_type", event_type=event_type)

    async def _run_hooks(self, event_type: str, obj: dict) -> None:
        for prefix, hook in self.hooks:
            if not event_type.startswith(prefix):
                continue
            try:
                await hook(event_type, obj)
            except Exception as e:
                # Hook failures never fail the event
                logger.error(
                    "stripe_lifecycle_hook_failed",
                    event_type=event_type,
                    hook=prefix,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def _subscription_hook(self, event_type: str, obj: dict) -> int:
        return await self.lifecycle.sync_subscription(obj)

    async def _payment_hook(self, event_type: str, obj: dict):
        return await self.lifecycle.sync_payment(event_type, obj)

    async def _record_outcome(self, event_id: str, processed: bool, error: str | None) -> None:
        try:
            await self.ledger.mark_processed(event_id, processed, error)
        except Exception as e:
            # The claim row already exists, so redeliveries still short-circuit
            logger.error("ledger_mark_processed_failed", event_id=event_id, error=str(e))

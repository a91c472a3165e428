"""Tests for WebhookProcessor: ledger gate, mirror routing, hooks and outcome recording."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from billing_sync.core.exceptions import LedgerUnavailableError
from billing_sync.db.models import Deal, PipelineDef, PipelineStage, StripeCustomer
from billing_sync.domain.events import EntityKind
from billing_sync.services.ledger import EventLedger
from billing_sync.services.lifecycle import LifecycleSynchronizer
from billing_sync.services.mirror import EntityMirror
from billing_sync.services.webhook import WebhookProcessor

pytestmark = pytest.mark.integration


def _make_stripe_event(event_id: str, event_type: str, data: dict) -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": data}}


@pytest.fixture
def processor(session_factory, settings) -> WebhookProcessor:
    return WebhookProcessor(
        ledger=EventLedger(session_factory),
        mirror=EntityMirror(session_factory),
        lifecycle=LifecycleSynchronizer(session_factory, settings),
    )


async def _add_sales_deal(session_factory, subscription_id: str) -> int:
    async with session_factory() as session:
        lead = (
            await session.execute(
                select(PipelineStage)
                .join(PipelineDef, PipelineStage.pipeline_id == PipelineDef.id)
                .where(PipelineDef.code == "sales", PipelineStage.code == "lead")
            )
        ).scalar_one()
        deal = Deal(
            title="Honorários mensais",
            pipeline_id=lead.pipeline_id,
            stage_id=lead.id,
            properties={"stripe_subscription_id": subscription_id},
        )
        session.add(deal)
        await session.commit()
        return deal.id


async def _deal_stage_code(session_factory, deal_id: int) -> str:
    async with session_factory() as session:
        result = await session.execute(
            select(PipelineStage.code).join(Deal, Deal.stage_id == PipelineStage.id).where(Deal.id == deal_id)
        )
        return result.scalar_one()


async def test_subscription_event_replay_is_processed_once(processor, session_factory):
    deal_id = await _add_sales_deal(session_factory, "sub_1")
    event = _make_stripe_event(
        "evt_1", "customer.subscription.updated", {"id": "sub_1", "customer": "cus_1", "status": "active"}
    )

    first = await processor.process(event)
    second = await processor.process(event)

    assert first.processed is True
    assert first.error is None
    assert second.processed is False
    assert second.reason == "already_processed"

    subscription = await processor.mirror.get(EntityKind.SUBSCRIPTION, "sub_1")
    assert subscription.status == "active"
    assert await _deal_stage_code(session_factory, deal_id) == "won"

    row = await processor.ledger.get_event("evt_1")
    assert row.processed is True


async def test_concurrent_deliveries_of_one_event_process_it_once(processor, session_factory):
    event = _make_stripe_event(
        "evt_race", "customer.created", {"id": "cus_race", "email": "race@example.com", "metadata": {}}
    )

    results = await asyncio.gather(*(processor.process(event) for _ in range(5)))

    assert sum(result.processed for result in results) == 1
    assert sorted(result.reason or "" for result in results) == ["", *["already_processed"] * 4]
    assert (await processor.ledger.get_event("evt_race")).processed is True

    async with session_factory() as session:
        ids = (await session.execute(select(StripeCustomer.id))).scalars().all()
    assert ids == ["cus_race"]


async def test_duplicate_response_shape(processor):
    event = _make_stripe_event("evt_dup", "customer.created", {"id": "cus_1"})
    await processor.process(event)

    body = (await processor.process(event)).to_response()

    assert body == {
        "received": True,
        "processed": False,
        "event_type": "customer.created",
        "event_id": "evt_dup",
        "error": None,
        "reason": "already_processed",
    }


async def test_mirror_failure_is_recorded_and_not_raised(processor):
    result = await processor.process(_make_stripe_event("evt_bad", "customer.updated", {"email": "no-id@example.com"}))

    assert result.processed is False
    assert "no Stripe id" in result.error

    row = await processor.ledger.get_event("evt_bad")
    assert row.processed is False
    assert "no Stripe id" in row.error


async def test_failed_event_is_not_reprocessed(processor):
    event = _make_stripe_event("evt_bad", "customer.updated", {"email": "no-id@example.com"})
    await processor.process(event)

    again = await processor.process(event)

    assert again.reason == "already_processed"


async def test_hook_failure_does_not_fail_event(session_factory):
    lifecycle = MagicMock()
    lifecycle.sync_subscription = AsyncMock(side_effect=RuntimeError("pipeline table locked"))
    processor = WebhookProcessor(EventLedger(session_factory), EntityMirror(session_factory), lifecycle)

    result = await processor.process(
        _make_stripe_event("evt_hook", "customer.subscription.deleted", {"id": "sub_1", "status": "canceled"})
    )

    assert result.processed is True
    assert result.error is None
    lifecycle.sync_subscription.assert_awaited_once()
    assert (await processor.mirror.get(EntityKind.SUBSCRIPTION, "sub_1")).status == "canceled"


async def test_payment_events_run_payment_hook(session_factory):
    lifecycle = MagicMock()
    lifecycle.sync_payment = AsyncMock()
    lifecycle.sync_subscription = AsyncMock()
    processor = WebhookProcessor(EventLedger(session_factory), EntityMirror(session_factory), lifecycle)
    intent = {"id": "pi_1", "customer": "cus_1", "metadata": {"numero_cnj": "123"}}

    await processor.process(_make_stripe_event("evt_pi", "payment_intent.payment_failed", intent))
    await processor.process(_make_stripe_event("evt_in", "invoice.payment_succeeded", {"id": "in_1"}))

    assert [call.args[0] for call in lifecycle.sync_payment.await_args_list] == [
        "payment_intent.payment_failed",
        "invoice.payment_succeeded",
    ]
    lifecycle.sync_subscription.assert_not_awaited()


async def test_unhandled_and_informational_events_are_acknowledged(processor):
    unhandled = await processor.process(_make_stripe_event("evt_x", "charge.refunded", {"id": "ch_1"}))
    informational = await processor.process(
        _make_stripe_event("evt_y", "invoice.upcoming", {"id": "upcoming", "customer": "cus_1"})
    )

    assert unhandled.processed is True
    assert informational.processed is True
    assert (await processor.ledger.get_event("evt_x")).processed is True


async def test_ledger_outage_propagates_before_side_effects():
    ledger = MagicMock()
    ledger.record_event = AsyncMock(side_effect=LedgerUnavailableError("Event ledger unavailable"))
    ledger.mark_processed = AsyncMock()
    mirror = MagicMock()
    mirror.upsert = AsyncMock()
    processor = WebhookProcessor(ledger, mirror, MagicMock())

    with pytest.raises(LedgerUnavailableError):
        await processor.process(_make_stripe_event("evt_2", "customer.created", {"id": "cus_1"}))

    mirror.upsert.assert_not_awaited()
    ledger.mark_processed.assert_not_awaited()


async def test_mark_processed_failure_is_swallowed(session_factory):
    ledger = EventLedger(session_factory)
    ledger.mark_processed = AsyncMock(side_effect=RuntimeError("connection reset"))
    processor = WebhookProcessor(ledger, EntityMirror(session_factory), MagicMock())

    result = await processor.process(_make_stripe_event("evt_3", "product.created", {"id": "prod_1"}))

    assert result.processed is True
    assert await ledger.record_event(_make_stripe_event("evt_3", "product.created", {"id": "prod_1"})) is False

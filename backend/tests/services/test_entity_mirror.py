"""Tests for EntityMirror replace-on-upsert semantics."""

import pytest
from sqlalchemy import select

from billing_sync.core.exceptions import MirrorPayloadError
from billing_sync.db.models import StripeCustomer
from billing_sync.domain.events import EntityKind
from billing_sync.services.mirror import EntityMirror

pytestmark = pytest.mark.integration


async def test_upsert_inserts_then_replaces_document(session_factory):
    mirror = EntityMirror(session_factory)

    await mirror.upsert_customer({"id": "cus_1", "email": "a@example.com", "name": "Ana", "phone": "+55"})
    await mirror.upsert_customer({"id": "cus_1", "email": "b@example.com"})

    row = await mirror.get(EntityKind.CUSTOMER, "cus_1")
    assert row.email == "b@example.com"
    assert row.name is None
    assert row.data == {"id": "cus_1", "email": "b@example.com"}


async def test_replaying_same_payload_is_idempotent(session_factory):
    mirror = EntityMirror(session_factory)
    payload = {"id": "prod_1", "name": "Consultoria", "active": True}

    await mirror.upsert(EntityKind.PRODUCT, payload)
    await mirror.upsert(EntityKind.PRODUCT, payload)

    row = await mirror.get(EntityKind.PRODUCT, "prod_1")
    assert row.name == "Consultoria"
    assert row.active is True
    assert row.data == payload


async def test_indexed_references_accept_expanded_objects(session_factory):
    mirror = EntityMirror(session_factory)

    await mirror.upsert_price({
        "id": "price_1",
        "product": {"id": "prod_9", "object": "product"},
        "active": True,
        "currency": "brl",
        "unit_amount": 19900,
    })
    await mirror.upsert_invoice({"id": "in_1", "customer": "cus_1", "subscription": "sub_1", "status": "open"})

    price = await mirror.get(EntityKind.PRICE, "price_1")
    invoice = await mirror.get(EntityKind.INVOICE, "in_1")
    assert price.product_id == "prod_9"
    assert price.unit_amount == 19900
    assert invoice.customer_id == "cus_1"
    assert invoice.subscription_id == "sub_1"


async def test_references_are_stored_without_the_referenced_row(session_factory):
    mirror = EntityMirror(session_factory)

    await mirror.upsert_subscription({"id": "sub_1", "customer": "cus_never_seen", "status": "active"})

    assert (await mirror.get(EntityKind.SUBSCRIPTION, "sub_1")).customer_id == "cus_never_seen"
    assert await mirror.get(EntityKind.CUSTOMER, "cus_never_seen") is None


async def test_customer_upsert_preserves_payment_state(session_factory):
    mirror = EntityMirror(session_factory)
    await mirror.upsert_customer({"id": "cus_1", "email": "a@example.com"})

    async with session_factory() as session:
        customer = (await session.execute(select(StripeCustomer).where(StripeCustomer.id == "cus_1"))).scalar_one()
        customer.payment_state = {"failed_attempts": 2}
        await session.commit()

    await mirror.upsert_customer({"id": "cus_1", "email": "new@example.com"})

    row = await mirror.get(EntityKind.CUSTOMER, "cus_1")
    assert row.email == "new@example.com"
    assert row.payment_state == {"failed_attempts": 2}


@pytest.mark.parametrize("payload", [{}, {"id": ""}, {"id": 42}, {"object": "customer"}])
async def test_payload_without_id_is_rejected(session_factory, payload):
    mirror = EntityMirror(session_factory)

    with pytest.raises(MirrorPayloadError):
        await mirror.upsert_customer(payload)

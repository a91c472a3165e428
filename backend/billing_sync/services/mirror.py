"""EntityMirror — projects Stripe payloads into local mirror rows.

Every upsert replaces the stored document and indexed columns in full
(last write wins); nothing is merged field by field, and replaying the same
payload leaves the same row. Cross-entity references are stored as-is without
checking that the referenced object has been mirrored.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.core.exceptions import MirrorPayloadError
from billing_sync.db.models.stripe_mirror import (
    StripeCheckoutSession,
    StripeCustomer,
    StripeInvoice,
    StripePaymentIntent,
    StripePrice,
    StripeProduct,
    StripeSubscription,
)
from billing_sync.db.upsert import build_upsert
from billing_sync.domain.events import EntityKind, stripe_ref

logger = structlog.get_logger(__name__)

MIRROR_MODELS = {
    EntityKind.CUSTOMER: StripeCustomer,
    EntityKind.PRODUCT: StripeProduct,
    EntityKind.PRICE: StripePrice,
    EntityKind.SUBSCRIPTION: StripeSubscription,
    EntityKind.INVOICE: StripeInvoice,
    EntityKind.PAYMENT_INTENT: StripePaymentIntent,
    EntityKind.CHECKOUT_SESSION: StripeCheckoutSession,
}


class EntityMirror:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._upserts: dict[EntityKind, Callable[[dict], Awaitable[str]]] = {
            EntityKind.CUSTOMER: self.upsert_customer,
            EntityKind.PRODUCT: self.upsert_product,
            EntityKind.PRICE: self.upsert_price,
            EntityKind.SUBSCRIPTION: self.upsert_subscription,
            EntityKind.INVOICE: self.upsert_invoice,
            EntityKind.PAYMENT_INTENT: self.upsert_payment_intent,
            EntityKind.CHECKOUT_SESSION: self.upsert_checkout_session,
        }

    async def upsert(self, kind: EntityKind, payload: dict) -> str:
        """Dispatch to the upsert for ``kind``. Returns the mirrored ID."""
        return await self._upserts[kind](payload)

    async def upsert_customer(self, payload: dict) -> str:
        return await self._write(
            StripeCustomer,
            payload,
            email=payload.get("email"),
            name=payload.get("name"),
        )

    async def upsert_product(self, payload: dict) -> str:
        return await self._write(
            StripeProduct,
            payload,
            name=payload.get("name"),
            active=payload.get("active"),
        )

    async def upsert_price(self, payload: dict) -> str:
        return await self._write(
            StripePrice,
            payload,
            product_id=stripe_ref(payload.get("product")),
            active=payload.get("active"),
            currency=payload.get("currency"),
            unit_amount=payload.get("unit_amount"),
        )

    async def upsert_subscription(self, payload: dict) -> str:
        return await self._write(
            StripeSubscription,
            payload,
            customer_id=stripe_ref(payload.get("customer")),
            status=payload.get("status"),
        )

    async def upsert_invoice(self, payload: dict) -> str:
        return await self._write(
            StripeInvoice,
            payload,
            customer_id=stripe_ref(payload.get("customer")),
            subscription_id=stripe_ref(payload.get("subscription")),
            status=payload.get("status"),
        )

    async def upsert_payment_intent(self, payload: dict) -> str:
        return await self._write(
            StripePaymentIntent,
            payload,
            customer_id=stripe_ref(payload.get("customer")),
            status=payload.get("status"),
            amount=payload.get("amount"),
        )

    async def upsert_checkout_session(self, payload: dict) -> str:
        return await self._write(
            StripeCheckoutSession,
            payload,
            customer_id=stripe_ref(payload.get("customer")),
            subscription_id=stripe_ref(payload.get("subscription")),
            status=payload.get("status"),
        )

    async def get(self, kind: EntityKind, entity_id: str):
        """Load a mirrored row by Stripe ID."""
        model = MIRROR_MODELS[kind]
        async with self.session_factory() as session:
            result = await session.execute(select(model).where(model.id == entity_id))
            return result.scalar_one_or_none()

    async def _write(self, model, payload: dict, **indexed: Any) -> str:
        entity_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(entity_id, str) or not entity_id:
            raise MirrorPayloadError(f"{model.__tablename__}: payload has no Stripe id")

        values = {"id": entity_id, "data": payload, "synced_at": datetime.now(UTC), **indexed}
        async with self.session_factory() as session:
            await session.execute(build_upsert(session, model, values, conflict_columns=["id"]))
            await session.commit()

        logger.debug("stripe_entity_mirrored", table=model.__tablename__, stripe_id=entity_id)
        return entity_id

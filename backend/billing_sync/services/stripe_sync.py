"""StripeSyncService — operator-triggered bulk sync and billing operations.

Bulk sync pages through Stripe list endpoints with ``starting_after`` cursors
and feeds each object through the same EntityMirror upserts as the webhook
path. It never triggers lifecycle side effects; it exists to repair mirror
staleness. Every collection is capped per invocation and no cursor is kept
between runs.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from billing_sync.core.config import Settings, get_settings
from billing_sync.core.exceptions import ContactNotFoundError, InvalidRequestError
from billing_sync.db.models.pipeline import Contact
from billing_sync.integrations.stripe_client import StripeClient, validate_key_mode
from billing_sync.schemas.stripe import (
    CheckoutSessionResponse,
    CreateSubscriptionResponse,
    CustomerSummary,
    StripeAccountSummary,
    SyncAllResponse,
)
from billing_sync.services.mirror import EntityMirror

logger = structlog.get_logger(__name__)

# Per-collection caps for sync_all: (max items, page size)
SYNC_ALL_CAPS: dict[str, tuple[int, int]] = {
    "products": (100, 100),
    "prices": (100, 100),
    "customers": (50, 50),
    "subscriptions": (50, 50),
}

SEARCH_LIMIT = 10


class StripeSyncService:
    def __init__(
        self,
        client: StripeClient,
        mirror: EntityMirror,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.client = client
        self.mirror = mirror
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    # ── Bulk sync ───────────────────────────────────────────────────

    async def _drain(
        self,
        path: str,
        params: dict[str, Any],
        upsert: Callable[[dict], Awaitable[str]],
        max_items: int,
        page_size: int,
    ) -> int:
        """Page through a list endpoint until exhausted or ``max_items`` mirrored."""
        synced = 0
        starting_after: str | None = None

        while synced < max_items:
            page_params = {**params, "limit": min(page_size, max_items - synced)}
            if starting_after:
                page_params["starting_after"] = starting_after

            page = await self.client.list_page(path, page_params)
            items = page.get("data") or []
            for item in items:
                await upsert(item)
                synced += 1

            if not page.get("has_more") or not items:
                break
            starting_after = items[-1]["id"]

        return synced

    async def sync_customers(self, max_items: int | None = None, page_size: int | None = None) -> int:
        """Mirror customers newest-first, up to the per-run cap."""
        count = await self._drain(
            "/customers",
            {},
            self.mirror.upsert_customer,
            max_items or self.settings.sync_customers_max_items,
            page_size or self.settings.sync_page_size,
        )
        logger.info("stripe_customers_synced", count=count)
        return count

    async def sync_all(self, now: datetime | None = None) -> SyncAllResponse:
        """Mirror active products and prices plus recently created customers and subscriptions.

        Args:
            now: Current time (for deterministic testing)
        """
        now = now or datetime.now(UTC)
        created_since = int((now - timedelta(days=self.settings.sync_recent_days)).timestamp())
        recent = {"created": {"gte": created_since}}

        plan = [
            ("products", "/products", {"active": True}, self.mirror.upsert_product),
            ("prices", "/prices", {"active": True}, self.mirror.upsert_price),
            ("customers", "/customers", recent, self.mirror.upsert_customer),
            ("subscriptions", "/subscriptions", recent, self.mirror.upsert_subscription),
        ]

        counts: dict[str, int] = {}
        for name, path, params, upsert in plan:
            max_items, page_size = SYNC_ALL_CAPS[name]
            counts[name] = await self._drain(path, params, upsert, max_items, page_size)

        total = sum(counts.values())
        logger.info("stripe_full_sync_completed", total_synced=total, **counts)
        return SyncAllResponse(total_synced=total, **counts)

    # ── Customer search ─────────────────────────────────────────────

    async def search_customers(self, query: str) -> list[CustomerSummary]:
        """Find customers by exact email, falling back to the Search API on name/email."""
        query = (query or "").strip()
        if len(query) < 2:
            raise InvalidRequestError("Query must be at least 2 characters")

        by_email = await self.client.request("/customers", params={"email": query, "limit": SEARCH_LIMIT})
        found = list(by_email.get("data") or [])

        if not found:
            escaped = query.replace("\\", "\\\\").replace("'", "\\'")
            search = await self.client.request(
                "/customers/search",
                params={"query": f"name:'{escaped}' OR email:'{escaped}'", "limit": SEARCH_LIMIT},
            )
            found.extend(search.get("data") or [])

        seen: set[str] = set()
        customers = []
        for customer in found:
            if customer["id"] in seen:
                continue
            seen.add(customer["id"])
            customers.append(
                CustomerSummary(
                    id=customer["id"],
                    email=customer.get("email"),
                    name=customer.get("name"),
                    phone=customer.get("phone"),
                    created=customer.get("created"),
                )
            )
        return customers

    # ── Billing operations ──────────────────────────────────────────

    async def _get_or_create_customer(self, contact_id: int) -> str:
        """Return the contact's Stripe customer ID, creating and mirroring one if needed."""
        async with self.session_factory() as session:
            result = await session.execute(select(Contact).where(Contact.id == contact_id))
            contact = result.scalar_one_or_none()
            if contact is None:
                raise ContactNotFoundError(contact_id)
            if contact.stripe_customer_id:
                return contact.stripe_customer_id
            email, name, phone = contact.email, contact.name, contact.phone

        customer = await self.client.request(
            "/customers",
            method="POST",
            data={
                "email": email or "",
                "name": name or "",
                "phone": phone or "",
                "metadata": {"contact_id": str(contact_id)},
            },
        )

        async with self.session_factory() as session:
            result = await session.execute(select(Contact).where(Contact.id == contact_id))
            contact = result.scalar_one()
            contact.stripe_customer_id = customer["id"]
            await session.commit()

        await self.mirror.upsert_customer(customer)
        logger.info("stripe_customer_created_for_contact", contact_id=contact_id, customer_id=customer["id"])
        return customer["id"]

    async def create_checkout_session(
        self,
        contact_id: int,
        price_id: str,
        quantity: int = 1,
        success_url: str | None = None,
        cancel_url: str | None = None,
        metadata: dict[str, str] | None = None,
        mode: str = "subscription",
        origin: str | None = None,
    ) -> CheckoutSessionResponse:
        """Create a Checkout Session for a CRM contact and mirror it.

        Redirect URLs default to ``{origin}/success`` and ``{origin}/cancel``.
        """
        if not (success_url and cancel_url) and not origin:
            raise InvalidRequestError("success_url and cancel_url are required when no Origin header is sent")

        customer_id = await self._get_or_create_customer(contact_id)

        session = await self.client.request(
            "/checkout/sessions",
            method="POST",
            data={
                "payment_method_types": ["card"],
                "mode": mode,
                "customer": customer_id,
                "success_url": success_url or f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": cancel_url or f"{origin}/cancel",
                "line_items": [{"price": price_id, "quantity": quantity}],
                "metadata": metadata or None,
            },
        )
        await self.mirror.upsert_checkout_session(session)

        logger.info("stripe_checkout_session_created", contact_id=contact_id, session_id=session["id"])
        return CheckoutSessionResponse(session_id=session["id"], url=session.get("url"))

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        quantity: int = 1,
        trial_days: int = 0,
    ) -> CreateSubscriptionResponse:
        subscription = await self.client.request(
            "/subscriptions",
            method="POST",
            data={
                "customer": customer_id,
                "items": [{"price": price_id, "quantity": quantity}],
                "trial_period_days": trial_days if trial_days > 0 else None,
            },
        )
        await self.mirror.upsert_subscription(subscription)

        logger.info("stripe_subscription_created", customer_id=customer_id, subscription_id=subscription["id"])
        return CreateSubscriptionResponse(subscription_id=subscription["id"], status=subscription.get("status"))

    async def test_connection(self, secret_key: str, mode: str) -> StripeAccountSummary:
        """Check a candidate key's mode prefix, then authenticate it against /account."""
        validate_key_mode(secret_key, mode)
        account = await self.client.retrieve_account(api_key=secret_key, mode=mode)
        return StripeAccountSummary(
            id=account["id"],
            email=account.get("email"),
            country=account.get("country"),
            currency=account.get("default_currency"),
            details_submitted=account.get("details_submitted"),
            charges_enabled=account.get("charges_enabled"),
            payouts_enabled=account.get("payouts_enabled"),
        )

"""Local mirror of Stripe billing entities.

Each table is keyed by the Stripe object ID and stores a handful of indexed
columns next to ``data``, the provider's full current representation. Rows are
replaced wholesale on every upsert; there are no foreign keys between them
because the mirror caches provider truth in whatever order events arrive.
"""

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from billing_sync.db.base import Base


class MirrorColumns:
    """Columns shared by every mirrored entity."""

    id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    synced_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class StripeCustomer(MirrorColumns, Base):
    __tablename__ = "stripe_customers"

    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)

    # Written by the payment lifecycle, never by an upsert:
    # {"payment_status", "last_payment_date", "last_payment_amount", "last_payment_attempt", "failed_attempts"}
    payment_state = Column(JSON, nullable=True)


class StripeProduct(MirrorColumns, Base):
    __tablename__ = "stripe_products"

    name = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=True)


class StripePrice(MirrorColumns, Base):
    __tablename__ = "stripe_prices"

    product_id = Column(String(255), nullable=True, index=True)
    active = Column(Boolean, nullable=True)
    currency = Column(String(10), nullable=True)
    unit_amount = Column(Integer, nullable=True)


class StripeSubscription(MirrorColumns, Base):
    __tablename__ = "stripe_subscriptions"

    customer_id = Column(String(255), nullable=True, index=True)
    status = Column(String(50), nullable=True)


class StripeInvoice(MirrorColumns, Base):
    __tablename__ = "stripe_invoices"

    customer_id = Column(String(255), nullable=True, index=True)
    subscription_id = Column(String(255), nullable=True, index=True)
    status = Column(String(50), nullable=True)


class StripePaymentIntent(MirrorColumns, Base):
    __tablename__ = "stripe_payment_intents"

    customer_id = Column(String(255), nullable=True, index=True)
    status = Column(String(50), nullable=True)
    amount = Column(Integer, nullable=True)


class StripeCheckoutSession(MirrorColumns, Base):
    __tablename__ = "stripe_checkout_sessions"

    customer_id = Column(String(255), nullable=True, index=True)
    subscription_id = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)

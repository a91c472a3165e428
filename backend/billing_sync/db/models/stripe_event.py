"""StripeWebhookEvent model for idempotency tracking."""

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from billing_sync.db.base import Base


class StripeWebhookEvent(Base):
    """One row per Stripe event ID ever received.

    The primary key is the only guard against two deliveries of the same event
    being processed concurrently.
    """

    __tablename__ = "stripe_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(255), nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    received_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    processed = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

"""Pydantic schemas for the Stripe webhook and operator endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ── Webhook ─────────────────────────────────────────────────────────


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: dict[str, Any]


class StripeEventEnvelope(BaseModel):
    """Inbound event; fields beyond id/type/data are kept in the ledger payload."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: StripeEventData


class WebhookResponse(BaseModel):
    received: bool
    processed: bool
    event_type: str
    event_id: str
    error: str | None = None
    reason: str | None = None


# ── Operator endpoints ──────────────────────────────────────────────


class CustomerSummary(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    created: int | None = None


class SearchCustomersRequest(BaseModel):
    query: str = ""


class SearchCustomersResponse(BaseModel):
    success: bool = True
    customers: list[CustomerSummary]


class SyncCustomersRequest(BaseModel):
    max_items: int | None = Field(default=None, ge=1, le=1000)


class SyncCustomersResponse(BaseModel):
    success: bool = True
    count: int


class SyncAllResponse(BaseModel):
    success: bool = True
    products: int
    prices: int
    customers: int
    subscriptions: int
    total_synced: int


class CheckoutSessionRequest(BaseModel):
    contact_id: int
    price_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    success_url: str | None = None
    cancel_url: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    mode: Literal["payment", "subscription", "setup"] = "subscription"


class CheckoutSessionResponse(BaseModel):
    success: bool = True
    session_id: str
    url: str | None = None


class CreateSubscriptionRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    price_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    trial_days: int = Field(default=0, ge=0)


class CreateSubscriptionResponse(BaseModel):
    success: bool = True
    subscription_id: str
    status: str | None = None


class ConnectionTestRequest(BaseModel):
    secret_key: str = Field(min_length=1)
    mode: Literal["test", "live"] = "test"


class StripeAccountSummary(BaseModel):
    id: str
    email: str | None = None
    country: str | None = None
    currency: str | None = None
    details_submitted: bool | None = None
    charges_enabled: bool | None = None
    payouts_enabled: bool | None = None


class ConnectionTestResponse(BaseModel):
    success: bool = True
    account: StripeAccountSummary

"""Operator endpoints for Stripe: bulk sync, customer search and billing operations.

Every route requires an admin API key. Provider and configuration failures
surface as ``{success: false, error, code}`` through the app's error handler.
"""

from fastapi import APIRouter, Depends, Request

from billing_sync.api.deps import get_sync_service
from billing_sync.core.auth import require_api_key
from billing_sync.schemas.stripe import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    ConnectionTestRequest,
    ConnectionTestResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SearchCustomersRequest,
    SearchCustomersResponse,
    SyncAllResponse,
    SyncCustomersRequest,
    SyncCustomersResponse,
)
from billing_sync.services.stripe_sync import StripeSyncService

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/search-customers", response_model=SearchCustomersResponse)
async def search_customers(
    body: SearchCustomersRequest,
    service: StripeSyncService = Depends(get_sync_service),
):
    customers = await service.search_customers(body.query)
    return SearchCustomersResponse(customers=customers)


@router.post("/sync-customers", response_model=SyncCustomersResponse)
async def sync_customers(
    body: SyncCustomersRequest | None = None,
    service: StripeSyncService = Depends(get_sync_service),
):
    """Mirror the newest customers, capped per call."""
    max_items = body.max_items if body else None
    count = await service.sync_customers(max_items=max_items)
    return SyncCustomersResponse(count=count)


@router.post("/sync-all", response_model=SyncAllResponse)
async def sync_all(service: StripeSyncService = Depends(get_sync_service)):
    """Mirror active products and prices plus recent customers and subscriptions."""
    return await service.sync_all()


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    body: CheckoutSessionRequest,
    request: Request,
    service: StripeSyncService = Depends(get_sync_service),
):
    return await service.create_checkout_session(
        contact_id=body.contact_id,
        price_id=body.price_id,
        quantity=body.quantity,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        metadata=body.metadata,
        mode=body.mode,
        origin=request.headers.get("origin"),
    )


@router.post("/create-subscription", response_model=CreateSubscriptionResponse)
async def create_subscription(
    body: CreateSubscriptionRequest,
    service: StripeSyncService = Depends(get_sync_service),
):
    return await service.create_subscription(
        customer_id=body.customer_id,
        price_id=body.price_id,
        quantity=body.quantity,
        trial_days=body.trial_days,
    )


@router.post("/test-connection", response_model=ConnectionTestResponse)
async def test_connection(
    body: ConnectionTestRequest,
    service: StripeSyncService = Depends(get_sync_service),
):
    """Validate a candidate secret key against its declared mode and the /account endpoint."""
    account = await service.test_connection(body.secret_key, body.mode)
    return ConnectionTestResponse(account=account)

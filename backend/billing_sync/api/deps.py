"""FastAPI dependencies wiring services to the shared session factory and vault."""

from fastapi import Depends, Request

from billing_sync.core.config import get_settings
from billing_sync.db.base import get_session_factory
from billing_sync.integrations.stripe_client import StripeClient
from billing_sync.services.ledger import EventLedger
from billing_sync.services.lifecycle import LifecycleSynchronizer
from billing_sync.services.mirror import EntityMirror
from billing_sync.services.stripe_sync import StripeSyncService
from billing_sync.services.vault import SecretStore
from billing_sync.services.webhook import WebhookProcessor


def get_vault(request: Request) -> SecretStore:
    """Return the process-wide SecretStore created during app startup."""
    return request.app.state.vault


def get_stripe_client(request: Request, vault: SecretStore = Depends(get_vault)) -> StripeClient:
    """StripeClient over the SDK HTTP client opened at startup."""
    http_client = getattr(request.app.state, "stripe_http_client", None)
    return StripeClient(vault, mode=get_settings().stripe_mode, http_client=http_client)


def get_webhook_processor() -> WebhookProcessor:
    session_factory = get_session_factory()
    return WebhookProcessor(
        ledger=EventLedger(session_factory),
        mirror=EntityMirror(session_factory),
        lifecycle=LifecycleSynchronizer(session_factory),
    )


def get_sync_service(client: StripeClient = Depends(get_stripe_client)) -> StripeSyncService:
    session_factory = get_session_factory()
    return StripeSyncService(client, EntityMirror(session_factory), session_factory)

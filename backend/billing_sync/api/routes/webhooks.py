"""Stripe webhook endpoint.

Signature verification runs only when a ``stripe_webhook_secret`` is present
in the vault or environment. Processing failures are reported in the 200 body
so Stripe does not redeliver events that were already claimed; only a ledger
outage returns 503 and asks for redelivery.
"""

import json

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from billing_sync.api.deps import get_vault, get_webhook_processor
from billing_sync.core.exceptions import LedgerUnavailableError
from billing_sync.schemas.stripe import StripeEventEnvelope, WebhookResponse
from billing_sync.services.vault import SecretStore
from billing_sync.services.webhook import WebhookProcessor

logger = structlog.get_logger(__name__)

router = APIRouter()

WEBHOOK_SECRET_NAME = "stripe_webhook_secret"
WEBHOOK_SECRET_ENV = "STRIPE_WEBHOOK_SECRET"


async def _parse_event(request: Request, vault: SecretStore) -> StripeEventEnvelope:
    body = await request.body()

    webhook_secret = await vault.get_secret_or_env(WEBHOOK_SECRET_NAME, WEBHOOK_SECRET_ENV)
    if webhook_secret:
        sig_header = request.headers.get("stripe-signature")
        if not sig_header:
            raise HTTPException(status_code=400, detail="Missing stripe-signature header")
        try:
            stripe.Webhook.construct_event(body, sig_header, webhook_secret)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError:
            logger.warning("stripe_webhook_signature_invalid")
            raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        raw = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        return StripeEventEnvelope.model_validate(raw)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid event envelope")


@router.post("/stripe", response_model=WebhookResponse, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    vault: SecretStore = Depends(get_vault),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Receive one Stripe event and run it through the ledger, mirror and lifecycle hooks."""
    envelope = await _parse_event(request, vault)

    try:
        result = await processor.process(envelope.model_dump())
    except LedgerUnavailableError as e:
        logger.error("stripe_webhook_ledger_unavailable", event_id=envelope.id, error=e.message)
        return JSONResponse(status_code=503, content={"received": False, "error": e.message})

    return result.to_response()

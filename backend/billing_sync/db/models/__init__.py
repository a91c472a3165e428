"""Re-export all models so Base.metadata sees them."""

from billing_sync.db.models.pipeline import CasePipelineLink, Contact, Deal, PipelineDef, PipelineStage
from billing_sync.db.models.secret import VaultSecret
from billing_sync.db.models.stripe_event import StripeWebhookEvent
from billing_sync.db.models.stripe_mirror import (
    StripeCheckoutSession,
    StripeCustomer,
    StripeInvoice,
    StripePaymentIntent,
    StripePrice,
    StripeProduct,
    StripeSubscription,
)

__all__ = [
    "CasePipelineLink",
    "Contact",
    "Deal",
    "PipelineDef",
    "PipelineStage",
    "StripeCheckoutSession",
    "StripeCustomer",
    "StripeInvoice",
    "StripePaymentIntent",
    "StripePrice",
    "StripeProduct",
    "StripeSubscription",
    "StripeWebhookEvent",
    "VaultSecret",
]

"""Stripe event routing.

Pure lookup tables mapping event types to the mirrored entity kind they carry.
No DB access.
"""

from enum import StrEnum


class EntityKind(StrEnum):
    """Stripe object kinds mirrored locally."""

    CUSTOMER = "customer"
    PRODUCT = "product"
    PRICE = "price"
    SUBSCRIPTION = "subscription"
    INVOICE = "invoice"
    PAYMENT_INTENT = "payment_intent"
    CHECKOUT_SESSION = "checkout_session"


MIRROR_ROUTES: dict[str, EntityKind] = {
    "customer.created": EntityKind.CUSTOMER,
    "customer.updated": EntityKind.CUSTOMER,
    "product.created": EntityKind.PRODUCT,
    "product.updated": EntityKind.PRODUCT,
    "price.created": EntityKind.PRICE,
    "price.updated": EntityKind.PRICE,
    "customer.subscription.created": EntityKind.SUBSCRIPTION,
    "customer.subscription.updated": EntityKind.SUBSCRIPTION,
    "customer.subscription.deleted": EntityKind.SUBSCRIPTION,
    "invoice.created": EntityKind.INVOICE,
    "invoice.updated": EntityKind.INVOICE,
    "invoice.payment_succeeded": EntityKind.INVOICE,
    "invoice.payment_failed": EntityKind.INVOICE,
    "invoice.finalized": EntityKind.INVOICE,
    "payment_intent.created": EntityKind.PAYMENT_INTENT,
    "payment_intent.succeeded": EntityKind.PAYMENT_INTENT,
    "payment_intent.payment_failed": EntityKind.PAYMENT_INTENT,
    "payment_intent.canceled": EntityKind.PAYMENT_INTENT,
    "checkout.session.completed": EntityKind.CHECKOUT_SESSION,
    "checkout.session.expired": EntityKind.CHECKOUT_SESSION,
}

# Acknowledged and logged, nothing to mirror
INFORMATIONAL_EVENTS: frozenset[str] = frozenset({
    "customer.subscription.trial_will_end",
    "invoice.upcoming",
})


def mirror_kind_for(event_type: str) -> EntityKind | None:
    """Return the entity kind an event type should be mirrored as, if any."""
    return MIRROR_ROUTES.get(event_type)


def stripe_ref(value) -> str | None:
    """Stripe references are either an ID string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value

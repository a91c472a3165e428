"""Billing lifecycle rules.

Pure domain functions deciding which pipeline stage a subscription or payment
outcome maps to, and how a customer's payment state evolves.
No DB access, fully deterministic.
"""

from datetime import datetime
from enum import StrEnum


class StageFlag(StrEnum):
    """Terminal flags of the sales pipeline."""

    WON = "won"
    LOST = "lost"


class PaymentOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


LOST_SUBSCRIPTION_STATUSES: frozenset[str] = frozenset({"canceled", "past_due", "unpaid"})

PAYMENT_SUCCESS_EVENTS: frozenset[str] = frozenset({"payment_intent.succeeded", "invoice.payment_succeeded"})
PAYMENT_FAILURE_EVENTS: frozenset[str] = frozenset({"payment_intent.payment_failed", "invoice.payment_failed"})


def subscription_stage_flag(status: str | None) -> StageFlag | None:
    """Map a subscription status to the sales stage its deals belong in.

    Rules:
        - active -> WON
        - canceled, past_due, unpaid -> LOST
        - anything else (trialing, incomplete, paused...) -> None, no move
    """
    if status == "active":
        return StageFlag.WON
    if status in LOST_SUBSCRIPTION_STATUSES:
        return StageFlag.LOST
    return None


def payment_outcome(event_type: str) -> PaymentOutcome | None:
    """Classify a payment event type; None for non-terminal events."""
    if event_type in PAYMENT_SUCCESS_EVENTS:
        return PaymentOutcome.SUCCEEDED
    if event_type in PAYMENT_FAILURE_EVENTS:
        return PaymentOutcome.FAILED
    return None


def payment_amount(obj: dict) -> int:
    """Amount in minor units: PaymentIntent ``amount``, else Invoice ``amount_paid``."""
    return obj.get("amount") or obj.get("amount_paid") or 0


def case_number(obj: dict) -> str | None:
    """Court case number tag (``metadata.numero_cnj``) carried by the payment, if any."""
    metadata = obj.get("metadata") or {}
    value = metadata.get("numero_cnj")
    return str(value) if value else None


def succeeded_payment_state(current: dict | None, amount: int, now: datetime) -> dict:
    """Next payment_state after a successful payment. Other keys are kept."""
    state = dict(current or {})
    state.update({
        "last_payment_date": now.isoformat(),
        "last_payment_amount": amount,
        "payment_status": PaymentOutcome.SUCCEEDED.value,
    })
    return state


def failed_payment_state(current: dict | None, now: datetime) -> dict:
    """Next payment_state after a failed attempt; failed_attempts grows by one."""
    state = dict(current or {})
    previous_failures = int(state.get("failed_attempts") or 0)
    state.update({
        "last_payment_attempt": now.isoformat(),
        "payment_status": PaymentOutcome.FAILED.value,
        "failed_attempts": previous_failures + 1,
    })
    return state

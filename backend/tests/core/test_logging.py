"""Tests for log redaction of credentials."""

import logging

import pytest

from billing_sync.core.logging import REDACTED, redact_secrets, shared_processors

pytestmark = pytest.mark.unit


def test_credential_fields_are_masked_whatever_their_value():
    event = redact_secrets(None, "info", {
        "event": "vault_secret_stored",
        "name": "stripe_secret_key",
        "value": "anything-at-all",
        "api_key": "test-admin-key",
        "authorization": "Bearer abc",
    })

    assert event == {
        "event": "vault_secret_stored",
        "name": "stripe_secret_key",
        "value": REDACTED,
        "api_key": REDACTED,
        "authorization": REDACTED,
    }


def test_none_credential_fields_stay_none():
    assert redact_secrets(None, "info", {"event": "x", "secret_key": None}) == {"event": "x", "secret_key": None}


@pytest.mark.parametrize(
    "text",
    [
        "retrying with sk_live_51HabcDEF",
        "key=sk_test_4eC39HqLyjWDarjtT1zdp7dc rejected",
        "restricted rk_live_abc123 in use",
        "signing secret whsec_abc123XYZ loaded",
    ],
)
def test_stripe_secrets_inside_text_are_masked(text):
    event = redact_secrets(None, "warning", {"event": text, "error": text})

    assert "_live_" not in event["event"] and "_test_" not in event["event"] and "whsec_" not in event["event"]
    assert REDACTED in event["error"]


def test_text_without_secrets_is_untouched():
    event = {"event": "stripe_api_error", "path": "/customers", "status_code": 402, "name": "stripe_secret_key"}

    assert redact_secrets(None, "warning", dict(event)) == event


def test_shared_chain_redacts_stdlib_records():
    record = logging.LogRecord("stripe", logging.WARNING, __file__, 1, "auth failed for %s", ("sk_test_abc",), None)
    event_dict = {"event": record.getMessage(), "_record": record}

    for processor in shared_processors():
        event_dict = processor(None, "warning", event_dict)

    assert event_dict["event"] == f"auth failed for {REDACTED}"
    assert event_dict["logger"] == "stripe"
    assert event_dict["level"] == "warning"

"""Admin API key authentication.

Valid keys are the comma-separated entries of the ``api_keys_valid`` vault
secret, falling back to the ``ADMIN_API_KEYS`` environment variable. With no
keys configured every gated route answers 503.
"""

import hmac

import structlog
from fastapi import Request

from billing_sync.core.exceptions import (
    ApiKeyInvalidError,
    ApiKeyMissingError,
    ApiKeysNotConfiguredError,
)

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEYS_SECRET = "api_keys_valid"
API_KEYS_ENV = "ADMIN_API_KEYS"


def parse_api_keys(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [key.strip() for key in raw.split(",") if key.strip()]


def is_valid_api_key(candidate: str, valid_keys: list[str]) -> bool:
    """Constant-time comparison against every configured key."""
    matched = False
    for key in valid_keys:
        if hmac.compare_digest(candidate.encode(), key.encode()):
            matched = True
    return matched


async def require_api_key(request: Request) -> str:
    """FastAPI dependency that gates operator routes behind ``X-API-Key``.

    Usage::

        @router.get("/secrets", dependencies=[Depends(require_api_key)])
        async def list_secrets(): ...

    Raises:
        ApiKeyMissingError: Header absent or empty (401)
        ApiKeysNotConfiguredError: No valid keys configured anywhere (503)
        ApiKeyInvalidError: Header does not match any configured key (403)
    """
    candidate = request.headers.get(API_KEY_HEADER)
    if not candidate:
        raise ApiKeyMissingError("API key required")

    vault = request.app.state.vault
    valid_keys = parse_api_keys(await vault.get_secret_or_env(API_KEYS_SECRET, API_KEYS_ENV))
    if not valid_keys:
        logger.error("api_keys_not_configured", path=request.url.path)
        raise ApiKeysNotConfiguredError("API keys are not configured")

    if not is_valid_api_key(candidate, valid_keys):
        logger.warning("api_key_rejected", path=request.url.path)
        raise ApiKeyInvalidError("Invalid API key")

    return candidate

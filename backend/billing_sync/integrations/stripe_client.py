"""Stripe Integration: authenticated requests against the Stripe REST API.

The client holds no credential of its own. Every request resolves the active
secret key through the vault, whose cache governs how quickly a rotated key is
picked up, and checks that the key matches the declared test/live mode before
anything goes over the wire. The wire work (form encoding, headers, error
decoding) is done by the stripe SDK.
"""

from typing import Any

import stripe
import structlog

from billing_sync.core.config import get_settings
from billing_sync.core.exceptions import CredentialModeError, MissingCredentialError, StripeAPIError
from billing_sync.services.vault import SecretStore

logger = structlog.get_logger(__name__)

SECRET_KEY_NAME = "stripe_secret_key"
SECRET_KEY_ENV = "STRIPE_SECRET_KEY"


def validate_key_mode(secret_key: str, mode: str) -> None:
    """Raise CredentialModeError unless ``secret_key`` starts with ``sk_<mode>_``."""
    expected_prefix = "sk_live_" if mode == "live" else "sk_test_"
    if not secret_key.startswith(expected_prefix):
        raise CredentialModeError(mode, expected_prefix)


class StripeClient:
    """Thin request wrapper over ``stripe.StripeClient``. No retries at this layer."""

    def __init__(
        self,
        vault: SecretStore,
        mode: str | None = None,
        api_base: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        http_client: stripe.HTTPClient | None = None,
    ):
        """Initialize Stripe client.

        Args:
            vault: Secret store holding ``stripe_secret_key``
            mode: Declared credential mode, "test" or "live"
            api_base: Stripe API host (defaults to settings)
            api_version: Value for the Stripe-Version header
            timeout: Per-request timeout in seconds
            http_client: SDK HTTP client; shared across requests when the app provides one
        """
        settings = get_settings()
        self.vault = vault
        self.mode = mode or settings.stripe_mode
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self.api_version = api_version or settings.stripe_api_version
        self.timeout = timeout or settings.stripe_timeout_seconds
        self.http_client = http_client or stripe.HTTPXClient(timeout=self.timeout)

    async def _resolve_secret_key(self) -> str:
        secret_key = await self.vault.get_secret_or_env(SECRET_KEY_NAME, SECRET_KEY_ENV)
        if not secret_key:
            raise MissingCredentialError("Stripe is not configured or inactive")
        return secret_key

    def _sdk(self, secret_key: str) -> stripe.StripeClient:
        return stripe.StripeClient(
            secret_key,
            stripe_version=self.api_version,
            base_addresses={"api": self.api_base},
            max_network_retries=0,
            http_client=self.http_client,
        )

    async def request(
        self,
        path: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        api_key: str | None = None,
        mode: str | None = None,
    ) -> dict:
        """Issue an authenticated request and return the response body as a plain dict.

        Args:
            path: API path below ``/v1``, e.g. "/customers"
            method: HTTP method
            params: Query parameters
            data: Form body
            api_key: Explicit key to use instead of the vault credential
            mode: Mode to validate ``api_key`` against (defaults to client mode)

        Raises:
            MissingCredentialError: No key in the vault or environment
            CredentialModeError: Key prefix does not match the declared mode
            StripeAPIError: Stripe rejected the request or could not be reached
        """
        secret_key = api_key or await self._resolve_secret_key()
        validate_key_mode(secret_key, mode or self.mode)

        sdk = self._sdk(secret_key)
        try:
            response = await sdk.raw_request_async(method.lower(), f"/v1{path}", **(data or params or {}))
        except stripe.StripeError as e:
            logger.warning(
                "stripe_api_error",
                method=method,
                path=path,
                status_code=e.http_status,
                stripe_code=e.code,
                error=e.user_message,
            )
            if isinstance(e, stripe.AuthenticationError) and api_key is None:
                # Re-read the stored key on the next request
                self.vault.invalidate()
            raise StripeAPIError(e.user_message or f"Stripe API error: {e.http_status}", e.http_status) from e

        return sdk.deserialize(response, api_mode="V1").to_dict()

    async def list_page(self, path: str, params: dict[str, Any] | None = None) -> dict:
        """Fetch one page of a Stripe list endpoint (``{data, has_more}``)."""
        return await self.request(path, params=params)

    async def retrieve_account(self, api_key: str | None = None, mode: str | None = None) -> dict:
        return await self.request("/account", api_key=api_key, mode=mode)

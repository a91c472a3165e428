class BillingSyncError(Exception):
    """Base exception for the billing sync service.

    Subclasses carry the HTTP status and machine-readable code used when the
    error reaches an API boundary.
    """

    status_code: int = 500
    code: str = "BILLING_SYNC_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(BillingSyncError):
    """Raised when a credential or setting required for an operation is unusable."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class MissingCredentialError(ConfigurationError):
    """Raised when no active Stripe credential can be resolved."""

    status_code = 503
    code = "STRIPE_NOT_CONFIGURED"


class CredentialModeError(ConfigurationError):
    """Raised when a key's prefix does not match the declared test/live mode."""

    status_code = 400
    code = "CREDENTIAL_MODE_MISMATCH"

    def __init__(self, mode: str, expected_prefix: str):
        self.mode = mode
        self.expected_prefix = expected_prefix
        super().__init__(f"Key must start with {expected_prefix} for {mode} mode")


class StripeAPIError(BillingSyncError):
    """Raised when Stripe rejects a request or cannot be reached."""

    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, http_status: int | None):
        self.http_status = http_status
        super().__init__(message)


class LedgerUnavailableError(BillingSyncError):
    """Raised when the event ledger cannot be consulted."""

    status_code = 503
    code = "LEDGER_UNAVAILABLE"


class MirrorPayloadError(BillingSyncError):
    """Raised when a provider payload cannot be mirrored (e.g. no id)."""

    status_code = 400
    code = "INVALID_PAYLOAD"


class ContactNotFoundError(BillingSyncError):
    status_code = 404
    code = "CONTACT_NOT_FOUND"

    def __init__(self, contact_id: int):
        self.contact_id = contact_id
        super().__init__(f"Contact {contact_id} not found")


class InvalidRequestError(BillingSyncError):
    status_code = 400
    code = "INVALID_REQUEST"


class ApiKeyMissingError(BillingSyncError):
    status_code = 401
    code = "API_KEY_MISSING"


class ApiKeyInvalidError(BillingSyncError):
    status_code = 403
    code = "API_KEY_INVALID"


class ApiKeysNotConfiguredError(BillingSyncError):
    """Raised when no admin API keys exist; admin routes stay closed."""

    status_code = 503
    code = "API_KEYS_NOT_CONFIGURED"

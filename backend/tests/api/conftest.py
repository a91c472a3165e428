"""API-specific test fixtures."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

API_KEY = "test-admin-key"


@pytest.fixture
async def app(engine, session_factory, vault, monkeypatch):
    """The FastAPI app wired to the test database and vault.

    ASGITransport does not run the lifespan, so the globals it would set up
    are assigned here instead.
    """
    import billing_sync.db.base as db_mod
    from billing_sync.main import app

    monkeypatch.delenv("ADMIN_API_KEYS", raising=False)
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)

    db_mod._engine = engine
    db_mod._session_factory = session_factory
    app.state.vault = vault
    app.state.stripe_http_client = None

    await vault.set_secret("api_keys_valid", f"other-key, {API_KEY}")

    yield app

    db_mod._engine = None
    db_mod._session_factory = None
    app.state.stripe_http_client = None


@pytest.fixture
async def client(app) -> AsyncClient:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": API_KEY}


@pytest.fixture
def stripe_api(app, stripe_http):
    """Route the app's Stripe calls to ``stripe_api.handler``, set by the test."""
    client = stripe_http(lambda request: httpx.Response(500, json={"error": {"message": "unrouted"}}))
    app.state.stripe_http_client = client
    return client

"""Shared test fixtures for all test groups."""

import httpx
import pytest
import stripe
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from billing_sync.core.config import Settings
from billing_sync.db.base import build_engine, create_schema
from billing_sync.db.seed import seed_pipelines
from billing_sync.services.vault import SecretStore


class FakeClock:
    """Manually advanced monotonic clock for cache TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockStripeHTTPClient(stripe.HTTPClient):
    """Stripe SDK HTTP client that answers from an httpx.MockTransport handler.

    Every request the SDK sends is kept in ``requests`` with its final URL,
    headers and form body.
    """

    name = "httpx-mock"

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self._httpx = httpx.AsyncClient(transport=httpx.MockTransport(self._serve))

    def _serve(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    async def request_async(self, method, url, headers, post_data=None):
        response = await self._httpx.request(method, url, headers=headers, content=post_data)
        return response.content, response.status_code, response.headers

    async def close_async(self):
        await self._httpx.aclose()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    """SQLite test engine on a throwaway file, all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing_sync.db'}")
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory over the test engine with sales/finance pipelines seeded."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await seed_pipelines(factory)
    return factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault(session_factory, clock) -> SecretStore:
    return SecretStore(session_factory, environment="development", ttl_seconds=300, clock=clock)


@pytest.fixture
async def stripe_http():
    """Factory for SDK HTTP clients backed by a request handler; closed at teardown."""
    clients: list[MockStripeHTTPClient] = []

    def _make(handler) -> MockStripeHTTPClient:
        client = MockStripeHTTPClient(handler)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close_async()

"""Pytest fixtures for testing."""

from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from factories import PRIMARY, SECONDARY, FakeTokenSource
from relay.api.dependencies import get_racer, get_token_source
from relay.api.main import create_app
from relay.config import Settings
from relay.llm.client import EndpointRacer

Handler = Callable[[httpx.Request], Any]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at test endpoints and a temporary credential file."""
    return Settings(
        credentials_path=tmp_path / "credentials.json",
        endpoints=[PRIMARY, SECONDARY],
    )


@pytest.fixture
def fake_token_source() -> FakeTokenSource:
    return FakeTokenSource()


@pytest.fixture
def make_racer() -> Callable[[Handler], EndpointRacer]:
    """Build a racer whose endpoints are served by ``handler``."""

    def _make(handler: Handler) -> EndpointRacer:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return EndpointRacer(http_client, endpoints=[PRIMARY, SECONDARY])

    return _make


@pytest_asyncio.fixture
async def make_client(
    settings: Settings,
    fake_token_source: FakeTokenSource,
    make_racer,
) -> AsyncGenerator[Callable[[Handler], AsyncClient], None]:
    """Provide an async HTTP client whose backend is served by ``handler``.

    The lifespan is not entered, so no credential file is needed; the token
    source and racer come from dependency overrides.
    """
    app = create_app(settings)
    clients: list[AsyncClient] = []

    def _make(handler: Handler) -> AsyncClient:
        racer = make_racer(handler)
        app.dependency_overrides[get_token_source] = lambda: fake_token_source
        app.dependency_overrides[get_racer] = lambda: racer
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()

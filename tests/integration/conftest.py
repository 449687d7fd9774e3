"""Integration test fixtures: the FastAPI app over the test database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from kasmoni.api.app import create_app
from kasmoni.api.dependencies import get_db_session

API_HEADERS = {"X-User-Id": "7", "X-Username": "admin", "User-Agent": "pytest-client"}


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests use sessions on the per-test database."""
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=API_HEADERS
    ) as client:
        yield client

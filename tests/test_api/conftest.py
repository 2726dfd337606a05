"""
Fixtures for driving the API over HTTP, against the test database.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gearshare.config.settings import Settings
from gearshare.core import events
from gearshare.core.uuid import uuid7


@pytest_asyncio.fixture(scope="session")
def event_bus():
    yield events.EventBus()


@pytest_asyncio.fixture(scope="session")
def api(server_settings: Settings, database, event_bus):
    from gearshare.api import dependencies
    from gearshare.api.app import app

    manager = server_settings.async_manager()

    async def get_test_session():
        async with manager.session() as session:
            try:
                async with session.begin():
                    yield session
            except Exception:
                events.discard_queued(session)
                raise

            await events.publish_queued(session, event_bus)

    app.dependency_overrides[dependencies.get_async_session] = get_test_session
    app.dependency_overrides[dependencies.get_event_bus] = lambda: event_bus

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def client(api):
    async with AsyncClient(
        transport=ASGITransport(app=api), base_url="http://test"
    ) as client:
        yield client


@pytest_asyncio.fixture(scope="session")
def register(client):
    async def register(name: str = "Test User") -> dict:
        tag = uuid7().hex
        response = await client.post(
            "/api/auth/register",
            json={"uid": f"uid-{tag}", "email": f"{tag}@example.com", "name": name},
        )
        assert response.status_code == 200
        return response.json()

    yield register

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

import database
from main import app


@pytest.fixture
def unprepared(monkeypatch):
    """Real get_db over an in-memory client whose indexes were never created."""
    mongo = AsyncMongoMockClient()
    monkeypatch.setattr(database, "get_client", lambda: mongo)
    monkeypatch.setattr(database, "_indexes_ready", False)
    return mongo


async def test_get_db_retries_index_setup_until_it_succeeds(unprepared, monkeypatch):
    real_ensure = database.ensure_indexes
    calls = []

    async def flaky_ensure(db):
        calls.append(db.name)
        if len(calls) == 1:
            raise ServerSelectionTimeoutError("no servers")
        await real_ensure(db)

    monkeypatch.setattr(database, "ensure_indexes", flaky_ensure)

    with pytest.raises(ServerSelectionTimeoutError):
        await database.get_db()
    db = await database.get_db()
    await database.get_db()

    assert len(calls) == 2
    assert "email_1" in await db["user"].index_information()


async def test_registrations_race_after_late_index_setup(unprepared, test_user_data):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first, second = await asyncio.gather(
            client.post("/api/auth/register", json=test_user_data),
            client.post("/api/auth/register", json=test_user_data),
        )

    assert sorted([first.status_code, second.status_code]) == [201, 409]
    db = unprepared["portfolio_test"]
    assert await db["user"].count_documents({}) == 1


async def test_database_failure_outside_handlers_is_an_envelope():
    async def unreachable():
        raise ServerSelectionTimeoutError("no servers")

    app.dependency_overrides[database.get_db] = unreachable
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/tags")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"message": "Server error", "success": False, "data": {}}

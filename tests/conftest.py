"""
Test configuration and fixtures
"""
import os

# Set testing environment before the app reads it
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only"
os.environ["JWT_EXPIRES_IN"] = "1h"
os.environ["BCRYPT_SALT_ROUNDS"] = "4"
os.environ["DATABASE_NAME"] = "portfolio_test"

from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from database import USERS, create_document, ensure_indexes, get_db
from main import app
from schemas import User
from security import create_token, hash_password

TEST_PASSWORD = "secret123"


@pytest.fixture
async def db():
    """Fresh in-memory database with the production indexes."""
    mongo = AsyncMongoMockClient()
    database = mongo["portfolio_test"]
    await ensure_indexes(database)
    yield database


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        return db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(db, email: str, role: str = "user", name: str = "Test User") -> Dict:
    user = User(name=name, email=email, password_hash=hash_password(TEST_PASSWORD), role=role)
    return await create_document(db, USERS, user)


def bearer(user: Dict) -> Dict[str, str]:
    token = create_token(str(user["_id"]), user["role"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(db) -> Dict:
    return await make_user(db, "admin@example.com", role="admin", name="Admin")


@pytest.fixture
async def regular_user(db) -> Dict:
    return await make_user(db, "student@example.com", name="Student")


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return bearer(admin_user)


@pytest.fixture
def user_headers(regular_user) -> Dict[str, str]:
    return bearer(regular_user)


@pytest.fixture
def test_user_data() -> Dict[str, str]:
    return {"name": "Anna", "email": "Anna@Example.com", "password": TEST_PASSWORD}

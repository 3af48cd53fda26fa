"""
Storefront Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The environment is set before anything from `storefront` is imported,
       because Settings, the engine, and the app are module-level singletons.

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session: AsyncMock session for service unit tests
    ├── make_user:       factory for unsaved User rows with a real bcrypt hash
    ├── db_tables:       creates/drops every table in the SQLite test database
    ├── test_client:     HTTPX AsyncClient bound to the FastAPI app
    └── auth_headers:    factory for Authorization headers for a user
"""

import os
import tempfile

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (before any storefront import)
# ══════════════════════════════════════════════════════════════════════════

_db_dir = tempfile.mkdtemp(prefix="storefront_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/storefront_test.db"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdefghijklmnop"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdefghijklmn"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_test_webhook_secret"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from storefront.database import Base, engine  # noqa: E402
from storefront.models.user import User  # noqa: E402
from storefront.services.password_service import password_service  # noqa: E402
from storefront.services.token_service import token_service  # noqa: E402

STRONG_PASSWORD = "Str0ng!Pass"


def _result_with(value, rowcount=1):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalars.return_value.all.return_value = value if isinstance(value, list) else []
    result.rowcount = rowcount
    return result


@pytest.fixture
def db_result():
    """
    Factory for mocked `await db.execute(...)` results.

    db_result(user).scalar_one_or_none() is user; db_result([a, b]).scalars().all() is [a, b].
    """
    return _result_with


@pytest.fixture
def mock_db_session():
    """
    Mock async database session.

    Usage:
        mock_db_session.execute.return_value = db_result(user)
        await auth_service.get_profile(mock_db_session, 1)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def make_user():
    """Build an unsaved User; the password hash is real so verify() works."""

    def _make(**overrides):
        fields = {
            "id": 1,
            "email": "priya@example.com",
            "password_hash": password_service.hash(STRONG_PASSWORD),
            "first_name": "Priya",
            "last_name": "Sharma",
            "phone": "+91 98765 43210",
            "role": "customer",
            "is_active": True,
            "created_at": datetime.now(timezone.utc),
        }
        fields.update(overrides)
        return User(**fields)

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user_id=1, email="priya@example.com", role="customer", **claims):
        token = token_service.generate_access_token(
            {"user_id": user_id, "email": email, "role": role, **claims}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def db_tables():
    """Create the schema in the SQLite test database for one test, then drop it."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def test_client():
    """
    Async HTTP client routed straight into the app (no server).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/api/health")
    """
    from storefront.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

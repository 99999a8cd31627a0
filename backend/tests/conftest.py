"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Configure settings BEFORE importing blogen (blogen.main builds its app at import)
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SHOPIFY_APP_KEY"] = "test-client-id"
os.environ["SHOPIFY_APP_SECRET"] = "test-client-secret"
os.environ["SHOPIFY_APP_URL"] = "https://blogen.test"
os.environ["SESSION_SECRET"] = "test-session-secret-that-is-long-enough-0123456789"
os.environ["ENVIRONMENT"] = "test"

# Set encryption key for tests
from cryptography.fernet import Fernet
if "BLOGEN_ENCRYPTION_KEY" not in os.environ:
    os.environ["BLOGEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()

from blogen.config import get_settings
from blogen.db import Base
from blogen.models import *  # Import all models to ensure they're registered
from blogen.models.profile import ProfileRole
from blogen.schemas.auth import SessionData, UserSnapshot

TEST_SHOP = "demo-store.myshopify.com"
TEST_ACCESS_TOKEN = "shpua_test_access_token"


@pytest.fixture
def settings():
    """Process settings built from the test environment."""
    return get_settings()


@pytest.fixture
def encryption(settings):
    """Token encryption keyed the same way as the app under test."""
    from blogen.utils.encryption import EncryptionService
    return EncryptionService(settings.blogen_encryption_key)

@pytest.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    # Use in-memory SQLite for testing
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    await engine.dispose()


@pytest.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session with automatic rollback."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )

    async with async_session_maker() as session:
        yield session
        # Rollback any uncommitted changes
        await session.rollback()


@pytest.fixture
async def app():
    """Create FastAPI app for testing."""
    from blogen.main import create_app
    return create_app()


@pytest.fixture
async def client(app, db):
    """Create async test client.

    Redirects are not followed so tests can inspect Location and Set-Cookie.
    """
    from httpx import AsyncClient, ASGITransport
    from blogen.db import get_db

    # Override get_db dependency to use test database
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", follow_redirects=False) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_snapshot():
    """Signed-in store owner as stored in the session."""
    now = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
    return UserSnapshot(
        id=1,
        shopify_user_id=42,
        email="ada@example.com",
        full_name="Ada Lovelace",
        shopify_store_url=TEST_SHOP,
        shopify_store_name="Demo Store",
        role=ProfileRole.STORE_OWNER,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def session_cookie(app, user_snapshot):
    """Encrypted session cookie value for an authenticated user."""
    data = SessionData(
        user=user_snapshot,
        access_token=TEST_ACCESS_TOKEN,
        shop=TEST_SHOP,
        is_authenticated=True,
    )
    return app.state.session_manager.encode(data)


@pytest.fixture
async def authenticated_client(client, session_cookie):
    """AsyncClient carrying a valid session cookie."""
    from blogen.services.session import SESSION_COOKIE_NAME

    client.headers["Cookie"] = f"{SESSION_COOKIE_NAME}={session_cookie}"
    yield client
    client.headers.pop("Cookie", None)

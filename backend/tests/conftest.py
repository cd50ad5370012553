"""
Test fixtures and configuration for pytest.
"""

import os
import sys
from typing import AsyncGenerator

# Cheap bcrypt and a throwaway database for the whole run; must precede app imports
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.database import Base, get_db
from services.passwords import PasswordHasher
from models.user import User

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

TEST_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    # Import models to register them
    from models import auth_session, generation_usage, text_session, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest_asyncio.fixture
async def sample_user(db_session: AsyncSession, hasher: PasswordHasher) -> User:
    """A regular (non-pro) user with TEST_PASSWORD."""
    user = User(
        email="ann@example.com",
        password_hash=hasher.hash_sync(TEST_PASSWORD),
        name="Ann",
        is_pro=False,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def pro_user(db_session: AsyncSession, hasher: PasswordHasher) -> User:
    user = User(
        email="pro@example.com",
        password_hash=hasher.hash_sync(TEST_PASSWORD),
        name="Pat Pro",
        is_pro=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


# ============== Client Fixtures ==============


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database override."""
    from main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    previous_factory = app.state.session_factory
    app.state.session_factory = TestingSessionLocal

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.session_factory = previous_factory
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client: AsyncClient):
    """Log the test client in; its cookie jar keeps the issued tokens."""

    async def _login(email: str = "ann@example.com", password: str = TEST_PASSWORD):
        response = await client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return response

    return _login


@pytest_asyncio.fixture
async def auth_client(client: AsyncClient, sample_user: User, login_as) -> AsyncClient:
    """Client holding the cookies of a logged-in regular user."""
    await login_as()
    return client

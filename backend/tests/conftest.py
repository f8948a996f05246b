"""
Test fixtures and configuration for pytest.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_settings
from db.database import Base, get_db
from services.categories import CategoryService

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_categories.db"

OWNER_ID = 1
OTHER_OWNER_ID = 2

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    # Import models to register them
    from models import category  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def category_service(db_session: AsyncSession) -> CategoryService:
    return CategoryService(db_session)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build bearer tokens the way the auth service signs them."""
    settings = get_settings()

    def _make_token(
        owner_id: Optional[int] = OWNER_ID,
        *,
        expires_in: timedelta = timedelta(minutes=15),
        secret: Optional[str] = None,
    ) -> str:
        payload = {"exp": datetime.now(timezone.utc) + expires_in}
        if owner_id is not None:
            payload["sub"] = str(owner_id)
        return jwt.encode(
            payload, secret or settings.SECRET_KEY, algorithm=settings.ALGORITHM
        )

    return _make_token


async def _client_for(
    db_session: AsyncSession, token: Optional[str] = None
) -> AsyncGenerator[AsyncClient, None]:
    from main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    headers = {"Authorization": f"Bearer {token}"} if token else {}
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ============== Client Fixtures ==============


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Test client without credentials."""
    async for ac in _client_for(db_session):
        yield ac


@pytest_asyncio.fixture(scope="function")
async def auth_client(
    db_session: AsyncSession, make_token
) -> AsyncGenerator[AsyncClient, None]:
    """Test client authenticated as owner 1."""
    async for ac in _client_for(db_session, make_token(OWNER_ID)):
        yield ac


@pytest_asyncio.fixture(scope="function")
async def other_auth_client(
    db_session: AsyncSession, make_token
) -> AsyncGenerator[AsyncClient, None]:
    """Test client authenticated as owner 2."""
    async for ac in _client_for(db_session, make_token(OTHER_OWNER_ID)):
        yield ac

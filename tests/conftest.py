import os

# Settings and the db module read these at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET", "test-secret")

from typing import Any, AsyncGenerator, Callable

import pytest
from fastapi import Depends, FastAPI
from fastapi_users.db import SQLAlchemyUserDatabase
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mentorchat.db import get_db_session, get_user_db
from mentorchat.main import app
from mentorchat.models import User, metadata
from mentorchat.realtime.hub import RealtimeHub, get_hub
from mentorchat.schemas.user import UserRole
from mentorchat.services.dependencies import create_messaging_service
from mentorchat.services.messaging_service import MessagingService
from mentorchat.services.provider import ServiceProvider
from test_helpers import create_test_user

# Use an in-memory SQLite database for testing; StaticPool keeps every
# session on the same connection so they all see the same database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
test_async_session_maker = async_sessionmaker(test_engine, expire_on_commit=False)


# Master fixture to manage table creation/dropping and provide session maker
@pytest.fixture(scope="function")
async def db_test_session_manager() -> (
    AsyncGenerator[async_sessionmaker[AsyncSession], None]
):
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield test_async_session_maker

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


# Fresh hub per test so channels never leak between tests
@pytest.fixture(scope="function", autouse=True)
async def hub() -> AsyncGenerator[RealtimeHub, None]:
    ServiceProvider.clear()
    hub = get_hub()
    yield hub
    await hub.close_all()
    ServiceProvider.clear()


@pytest.fixture(scope="function")
async def db_session(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with db_test_session_manager() as session:
        yield session


@pytest.fixture(scope="function")
async def patient(db_session: AsyncSession) -> User:
    user = create_test_user(full_name="Pat Patient", role=UserRole.PATIENT)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture(scope="function")
async def mentor(db_session: AsyncSession) -> User:
    user = create_test_user(
        full_name="Morgan Mentor", role=UserRole.MENTOR, specialty="Anxiety"
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture(scope="function")
def make_service(
    db_session: AsyncSession, hub: RealtimeHub
) -> Callable[..., MessagingService]:
    """Builds a MessagingService on the test session, acting as ``current_user``."""

    def _make(current_user: User | None = None) -> MessagingService:
        return create_messaging_service(db_session, current_user=current_user, hub=hub)

    return _make


# Override for the raw AsyncSession dependency
async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with test_async_session_maker() as session:
        yield session


# Override for the FastAPI Users DB adapter dependency
async def override_get_user_db(
    # FastAPI will provide the overridden get_db_session here
    session: AsyncSession = Depends(get_db_session),
) -> SQLAlchemyUserDatabase[User, Any]:
    yield SQLAlchemyUserDatabase(session, User)


@pytest.fixture(scope="function")
def test_app(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> FastAPI:
    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_user_db] = override_get_user_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client

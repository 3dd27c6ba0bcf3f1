from typing import Any, AsyncGenerator

import pytest
from asyncstdlib import anext
from fastapi import FastAPI
from fastapi_users.db import SQLAlchemyUserDatabase
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mentorchat.models import User
from mentorchat.schemas.user import UserCreate, UserRole

TEST_EMAIL = "testuser@example.com"
TEST_PASSWORD = "password123"


# Helper function to create a user through the user manager (not a fixture itself)
async def create_registered_user(
    session_maker: async_sessionmaker[AsyncSession],
    user_data: UserCreate,
    user_manager_dependency: Any,
) -> User:
    async with session_maker() as session:
        user_manager_gen = user_manager_dependency(SQLAlchemyUserDatabase(session, User))
        user_manager = await anext(user_manager_gen)
        try:
            user = await user_manager.create(user_data)
            await session.commit()
            await session.refresh(user)
            return user
        finally:
            await user_manager_gen.aclose()


async def login(client: AsyncClient, email: str, password: str) -> str:
    res = await client.post(
        "/auth/jwt/login", data={"username": email, "password": password}
    )
    assert res.status_code == 204, res.text
    cookie = res.headers["Set-Cookie"]
    return cookie.split(";")[0].split("=", 1)[1]


@pytest.fixture(scope="function")
async def authenticated_client(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
    test_app: FastAPI,
) -> AsyncGenerator[AsyncClient, None]:
    from mentorchat.auth_config import get_user_manager

    user_data = UserCreate(
        email=TEST_EMAIL,
        password=TEST_PASSWORD,
        full_name="Test Patient",
        role=UserRole.PATIENT,
    )
    await create_registered_user(db_test_session_manager, user_data, get_user_manager)

    access_token = await login(test_client, TEST_EMAIL, TEST_PASSWORD)
    test_client.headers["Cookie"] = f"fastapiusersauth={access_token}"

    yield test_client

    del test_client.headers["Cookie"]


@pytest.fixture(scope="function")
async def logged_in_user(
    authenticated_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> User:
    """Provides the User object for the default authenticated user."""
    async with db_test_session_manager() as session:
        from mentorchat.repositories.user_repository import UserRepository

        user = await UserRepository(session).get_user_by_email(TEST_EMAIL)
        if not user:
            pytest.fail(f"Test user '{TEST_EMAIL}' not found in DB for logged_in_user fixture")
        return user


@pytest.fixture(scope="function")
async def other_user(db_test_session_manager: async_sessionmaker[AsyncSession]) -> User:
    from test_helpers import create_test_user

    user = create_test_user(full_name="Morgan Mentor", role=UserRole.MENTOR)
    async with db_test_session_manager() as session:
        session.add(user)
        await session.commit()
    return user

import logging
import os
from collections.abc import AsyncGenerator
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends
from fastapi_users.db import SQLAlchemyUserDatabase
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .models import User, metadata
from .realtime.changes import install_change_feed

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

engine = create_async_engine(DATABASE_URL)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)

install_change_feed()


# Dependency to get the raw SQLAlchemy AsyncSession
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Dependency to get the FastAPI Users database adapter
async def get_user_db(
    session: AsyncSession = Depends(get_db_session),
) -> SQLAlchemyUserDatabase[User, Any]:
    yield SQLAlchemyUserDatabase(session, User)


async def check_database_health(skip_table_check: bool = False) -> bool:
    """
    Check that the database connection works and all required tables exist.
    Returns True if healthy, raises an exception if not.
    """
    logger = logging.getLogger(__name__)

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")

            if skip_table_check:
                return True

            expected_tables = set(metadata.tables.keys())
            existing_tables = set(
                await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            )
            missing_tables = expected_tables - existing_tables

            if missing_tables:
                logger.error(f"Missing required tables: {missing_tables}")
                raise RuntimeError(
                    f"Database migration required. Missing tables: {missing_tables}"
                )

            logger.info(f"All required tables present: {expected_tables}")
            return True

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise

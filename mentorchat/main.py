import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from mentorchat.auth_config import auth_backend, fastapi_users
from mentorchat.core.logging import configure_logging
from mentorchat.db import check_database_health
from mentorchat.realtime.hub import get_hub
from mentorchat.schemas.user import UserCreate, UserRead, UserUpdate
from mentorchat.services.migration_service import run_migrations

from .api.routes import conversations, me, messages, realtime

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")
    try:
        await run_migrations()
        await check_database_health(
            skip_table_check=os.getenv("SKIP_TABLE_CHECK") == "true"
        )
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        raise

    yield

    logger.info("Application shutting down...")
    await get_hub().close_all()


app = FastAPI(title="MentorChat", lifespan=lifespan)


app.include_router(
    fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"]
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)
app.include_router(conversations.conversations_router_instance)
app.include_router(messages.messages_router_instance)
app.include_router(me.me_router_instance)
app.include_router(realtime.realtime_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

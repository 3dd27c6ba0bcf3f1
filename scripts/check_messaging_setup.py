#!/usr/bin/env python3
"""
Messaging setup self-test.

Checks that the messaging tables exist and that storing a message moves its
conversation's activity timestamp forward. Everything runs in a single
transaction that is rolled back, so nothing is left in the database.

Exit code 0 when healthy, 1 otherwise.
"""

import argparse
import asyncio
import os
import sys
import uuid

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

sys.path.insert(0, os.path.realpath(os.path.join(os.path.dirname(__file__), "..")))

from mentorchat.models import Conversation, User, metadata  # noqa: E402
from mentorchat.repositories.conversation_repository import (  # noqa: E402
    ConversationRepository,
)
from mentorchat.repositories.message_repository import MessageRepository  # noqa: E402
from mentorchat.schemas.user import UserRole  # noqa: E402

REQUIRED_TABLES = (
    "users",
    "conversations",
    "conversation_participants",
    "messages",
    "notifications",
)


async def check_tables(conn) -> list[str]:
    existing = set(
        await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    )
    return [name for name in REQUIRED_TABLES if name not in existing]


async def check_timestamp_maintenance(session: AsyncSession) -> bool:
    """Inserts a throwaway pair, conversation and message, then re-reads the row."""
    users = [
        User(
            email=f"selftest-{uuid.uuid4().hex[:8]}@example.invalid",
            hashed_password="!",
            role=role,
        )
        for role in (UserRole.PATIENT, UserRole.MENTOR)
    ]
    session.add_all(users)
    await session.flush()

    conversation, _ = await ConversationRepository(session).get_or_create_conversation(
        users[0].id, users[1].id
    )
    await MessageRepository(session).create_message(
        conversation_id=conversation.id,
        sender_id=users[0].id,
        content="self-test",
    )

    table = Conversation.__table__
    row = (
        await session.execute(
            select(table.c.last_message_at).where(table.c.id == conversation.id)
        )
    ).one()
    return row.last_message_at is not None


async def run_checks(database_url: str) -> bool:
    engine = create_async_engine(database_url)
    try:
        async with engine.connect() as conn:
            missing = await check_tables(conn)
            # Inspection autobegins; end it before the explicit transaction
            await conn.rollback()
            if missing:
                print(f"❌ Missing tables: {', '.join(missing)}")
                print("Run 'alembic upgrade head' to create them.")
                return False
            print(f"✅ Tables present: {', '.join(REQUIRED_TABLES)}")

            transaction = await conn.begin()
            try:
                async with AsyncSession(bind=conn) as session:
                    timestamps_ok = await check_timestamp_maintenance(session)
            finally:
                await transaction.rollback()

            if not timestamps_ok:
                print("❌ Inserting a message did not update conversations.last_message_at")
                return False
            print("✅ Message inserts advance conversation timestamps")
            return True
    except Exception as e:
        print(f"❌ Self-test failed: {e}")
        return False
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Verify the messaging tables and timestamp maintenance."
    )
    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL"),
        help="Async SQLAlchemy URL (defaults to $DATABASE_URL)",
    )
    args = parser.parse_args(argv)

    if not args.database_url:
        parser.error("no database URL given and DATABASE_URL is not set")

    print(f"🔍 Checking messaging setup ({len(metadata.tables)} mapped tables)...")
    healthy = asyncio.run(run_checks(args.database_url))
    return 0 if healthy else 1


if __name__ == "__main__":
    sys.exit(main())

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.models import Conversation, Message

from .base import BaseRepository


class MessageRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
    ) -> Message:
        """Creates and flushes a new message."""
        now = datetime.now(timezone.utc)
        new_message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            attachment_url=attachment_url,
            attachment_type=attachment_type,
            read=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(new_message)
        await self.session.flush()
        return new_message

    async def get_message_by_id(self, message_id: UUID) -> Message | None:
        """Direct lookup; soft-deleted messages are still returned."""
        stmt = (
            select(Message)
            .filter(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_conversation_messages(
        self, conversation_id: UUID, limit: int, offset: int
    ) -> list[Message]:
        """Returns one page of active messages in chronological order.

        Offset 0 is the newest page; higher offsets walk back in history.
        """
        stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.deleted_at.is_(None),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def mark_messages_as_read(
        self, conversation_id: UUID, user_id: UUID, read_at: datetime
    ) -> int:
        """Flags every unread message from the other participant as read."""
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != user_id,
                Message.read.is_(False),
            )
            .values(read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def soft_delete_message(
        self, message_id: UUID, sender_id: UUID, deleted_at: datetime
    ) -> int:
        stmt = (
            update(Message)
            .where(
                Message.id == message_id,
                Message.sender_id == sender_id,
                Message.deleted_at.is_(None),
            )
            .values(deleted_at=deleted_at, updated_at=deleted_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def count_unread_by_sender(self, user_id: UUID) -> dict[UUID, int]:
        """Unread, active messages addressed to ``user_id`` grouped by sender."""
        stmt = (
            select(Message.sender_id, func.count(Message.id))
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id),
                Message.sender_id != user_id,
                Message.read.is_(False),
                Message.deleted_at.is_(None),
            )
            .group_by(Message.sender_id)
        )
        result = await self.session.execute(stmt)
        return {sender_id: count for sender_id, count in result.all()}

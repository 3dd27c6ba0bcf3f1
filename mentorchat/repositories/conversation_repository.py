from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mentorchat.models import Conversation, ConversationParticipant, Message
from mentorchat.schemas.conversation import ConversationSummary

from .base import BaseRepository


def canonical_pair(user_a: UUID, user_b: UUID) -> tuple[UUID, UUID]:
    """Orders a user pair so (A, B) and (B, A) map to the same row."""
    return (user_a, user_b) if str(user_a) < str(user_b) else (user_b, user_a)


class ConversationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_conversation_by_id(
        self, conversation_id: UUID
    ) -> Conversation | None:
        stmt = (
            select(Conversation)
            .filter(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_conversation_details(
        self, conversation_id: UUID
    ) -> Conversation | None:
        """Retrieves a conversation with its participants and their users loaded."""
        stmt = (
            select(Conversation)
            .filter(Conversation.id == conversation_id)
            .options(
                selectinload(Conversation.participants).joinedload(
                    ConversationParticipant.user
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_conversation_for_pair(
        self, user_a: UUID, user_b: UUID
    ) -> Conversation | None:
        user1_id, user2_id = canonical_pair(user_a, user_b)
        stmt = select(Conversation).filter(
            Conversation.user1_id == user1_id, Conversation.user2_id == user2_id
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_or_create_conversation(
        self, user_a: UUID, user_b: UUID
    ) -> tuple[Conversation, bool]:
        """Returns the pair's conversation, creating it and both participant rows
        when missing. Flushes but does not commit; the flag tells whether a row
        was created."""
        existing = await self.find_conversation_for_pair(user_a, user_b)
        if existing:
            return existing, False

        now = datetime.now(timezone.utc)
        user1_id, user2_id = canonical_pair(user_a, user_b)
        conversation = Conversation(user1_id=user1_id, user2_id=user2_id)
        self.session.add(conversation)
        await self.session.flush()

        for user_id in (user1_id, user2_id):
            self.session.add(
                ConversationParticipant(
                    conversation_id=conversation.id, user_id=user_id, joined_at=now
                )
            )
        await self.session.flush()
        return conversation, True

    async def set_appointment(
        self, conversation_id: UUID, appointment_id: UUID
    ) -> int:
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(appointment_id=appointment_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def get_conversation_id_by_appointment(
        self, appointment_id: UUID
    ) -> UUID | None:
        stmt = (
            select(Conversation.id)
            .filter(Conversation.appointment_id == appointment_id)
            .order_by(Conversation.created_at.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_user_conversations(
        self, user_id: UUID
    ) -> Sequence[ConversationSummary]:
        """Inbox rows for a user, most recently active first."""
        stmt = (
            select(Conversation)
            .filter(or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id))
            .options(selectinload(Conversation.user1), selectinload(Conversation.user2))
            .order_by(
                Conversation.last_message_at.desc().nullslast(),
                Conversation.created_at.desc(),
            )
        )
        conversations = (await self.session.execute(stmt)).scalars().all()
        if not conversations:
            return []

        ids = [c.id for c in conversations]
        last_messages = await self._last_messages(ids)
        unread_counts = await self._unread_counts(ids, user_id)

        summaries = []
        for conversation in conversations:
            other = (
                conversation.user2
                if conversation.user1_id == user_id
                else conversation.user1
            )
            last = last_messages.get(conversation.id)
            unread = unread_counts.get(conversation.id, 0)
            summaries.append(
                ConversationSummary(
                    conversation_id=conversation.id,
                    other_user_id=other.id,
                    other_user_name=other.full_name or other.email or "Unknown User",
                    other_user_email=other.email or "",
                    other_user_avatar=other.avatar_url,
                    last_message_content=last.content if last else None,
                    last_message_time=last.created_at if last else None,
                    unread_count=unread,
                    has_unread=unread > 0,
                )
            )
        return summaries

    async def _last_messages(self, conversation_ids: list[UUID]) -> dict[UUID, Message]:
        ranked = (
            select(
                Message.id.label("message_id"),
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=Message.created_at.desc(),
                )
                .label("rank"),
            )
            .filter(
                Message.conversation_id.in_(conversation_ids),
                Message.deleted_at.is_(None),
            )
            .subquery()
        )
        stmt = select(Message).join(
            ranked, and_(Message.id == ranked.c.message_id, ranked.c.rank == 1)
        )
        result = await self.session.execute(stmt)
        return {m.conversation_id: m for m in result.scalars().all()}

    async def _unread_counts(
        self, conversation_ids: list[UUID], user_id: UUID
    ) -> dict[UUID, int]:
        stmt = (
            select(Message.conversation_id, func.count(Message.id))
            .filter(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != user_id,
                Message.read.is_(False),
                Message.deleted_at.is_(None),
            )
            .group_by(Message.conversation_id)
        )
        result = await self.session.execute(stmt)
        return {conversation_id: count for conversation_id, count in result.all()}

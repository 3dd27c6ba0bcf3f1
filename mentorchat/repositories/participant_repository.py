from datetime import datetime
from uuid import UUID

from sqlalchemy import exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.models import ConversationParticipant

from .base import BaseRepository


class ParticipantRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_participant(
        self, conversation_id: UUID, user_id: UUID
    ) -> ConversationParticipant | None:
        stmt = select(ConversationParticipant).filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        stmt = select(
            exists().where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def advance_last_read(
        self, conversation_id: UUID, user_id: UUID, read_at: datetime
    ) -> int:
        """Moves the participant's read cursor forward, never backwards."""
        stmt = (
            update(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
                or_(
                    ConversationParticipant.last_read_at.is_(None),
                    ConversationParticipant.last_read_at < read_at,
                ),
            )
            .values(last_read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

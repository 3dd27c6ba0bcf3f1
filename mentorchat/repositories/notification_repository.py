from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.models import Notification

from .base import BaseRepository


class NotificationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_notification(
        self,
        user_id: UUID,
        title: str,
        message: str,
        type: str,
        *,
        sender_name: str | None = None,
        sender_avatar: str | None = None,
        action_url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            sender_name=sender_name,
            sender_avatar=sender_avatar,
            action_url=action_url,
            details=details,
            read=False,
        )
        self.session.add(notification)
        await self.session.flush()
        await self.session.refresh(notification)
        return notification

    async def list_for_user(
        self, user_id: UUID, unread_only: bool = False
    ) -> Sequence[Notification]:
        stmt = select(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.filter(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from mentorchat.repositories.notification_repository import NotificationRepository
from mentorchat.schemas.notification import NotificationRead

from .exceptions import BackendError

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, notification_repository: NotificationRepository):
        self.notif_repo = notification_repository
        self.session = notification_repository.session

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
    ) -> NotificationRead:
        """Stores a notification record for ``user_id`` and commits it."""
        try:
            notification = await self.notif_repo.create_notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                sender_name=sender_name,
                sender_avatar=sender_avatar,
                action_url=action_url,
                details=details,
            )
            result = NotificationRead.model_validate(notification)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error creating notification: {e}", exc_info=True)
            raise BackendError("Failed to create notification due to a database error.") from e
        return result

    async def list_notifications(
        self, user_id: UUID, unread_only: bool = False
    ) -> list[NotificationRead]:
        try:
            notifications = await self.notif_repo.list_for_user(
                user_id, unread_only=unread_only
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error listing notifications: {e}", exc_info=True)
            raise BackendError("Failed to list notifications due to a database error.") from e
        return [NotificationRead.model_validate(n) for n in notifications]

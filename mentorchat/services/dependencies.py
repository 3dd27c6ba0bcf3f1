from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.auth_config import current_optional_user
from mentorchat.db import get_db_session
from mentorchat.models import User
from mentorchat.realtime.hub import RealtimeHub, get_hub
from mentorchat.repositories.conversation_repository import ConversationRepository
from mentorchat.repositories.message_repository import MessageRepository
from mentorchat.repositories.notification_repository import NotificationRepository
from mentorchat.repositories.participant_repository import ParticipantRepository
from mentorchat.repositories.user_repository import UserRepository

from .messaging_service import MessagingService
from .notification_service import NotificationService


def create_messaging_service(
    session: AsyncSession,
    current_user: User | None = None,
    hub: RealtimeHub | None = None,
) -> MessagingService:
    """Wires a MessagingService and its repositories onto one session."""
    return MessagingService(
        conversation_repository=ConversationRepository(session),
        participant_repository=ParticipantRepository(session),
        message_repository=MessageRepository(session),
        user_repository=UserRepository(session),
        notification_service=NotificationService(NotificationRepository(session)),
        hub=hub or get_hub(),
        current_user=current_user,
    )


def get_notification_service(
    session: AsyncSession = Depends(get_db_session),
) -> NotificationService:
    """Provides a NotificationService bound to the request's session."""
    return NotificationService(NotificationRepository(session))


def get_messaging_service(
    session: AsyncSession = Depends(get_db_session),
    user: User | None = Depends(current_optional_user),
) -> MessagingService:
    """Provides a MessagingService bound to the request's session and user.

    Built per request because its repositories share the request's session;
    only the realtime hub is process-wide.
    """
    return create_messaging_service(session, current_user=user)

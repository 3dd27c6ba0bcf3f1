from uuid import UUID

from fastapi import APIRouter, Depends, Query

from mentorchat.api.common import BaseRouter
from mentorchat.auth_config import current_active_user
from mentorchat.models import User
from mentorchat.schemas.notification import NotificationRead
from mentorchat.schemas.user import UserProfile
from mentorchat.services.dependencies import (
    get_messaging_service,
    get_notification_service,
)
from mentorchat.services.messaging_service import MessagingService
from mentorchat.services.notification_service import NotificationService

me_router_instance = APIRouter(prefix="/me")
router = BaseRouter(router=me_router_instance, default_tags=["me"])


@router.get("/unread-counts", response_model=dict[UUID, int])
async def get_unread_counts(
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Unread messages addressed to the caller, keyed by sender id."""
    return await service.get_unread_counts(user.id)


@router.get("/contacts", response_model=list[UserProfile])
async def get_contacts(
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.get_available_contacts(user)


@router.get("/notifications", response_model=list[NotificationRead])
async def get_notifications(
    unread_only: bool = Query(default=False),
    user: User = Depends(current_active_user),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.list_notifications(user.id, unread_only=unread_only)

from uuid import UUID

from fastapi import APIRouter, Depends, status

from mentorchat.api.common import BaseRouter
from mentorchat.auth_config import current_active_user
from mentorchat.models import User
from mentorchat.schemas.message import MessageRead
from mentorchat.services.dependencies import get_messaging_service
from mentorchat.services.messaging_service import MessagingService

messages_router_instance = APIRouter()
router = BaseRouter(router=messages_router_instance, default_tags=["messages"])


@router.get("/messages/{message_id}", response_model=MessageRead)
async def get_message(
    message_id: UUID,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Direct lookup; soft-deleted messages are returned with deleted_at set."""
    message = await service.get_message(message_id)
    await service.require_participant(message.conversation_id, user.id)
    return message


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: UUID,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.delete_message(message_id, user.id)

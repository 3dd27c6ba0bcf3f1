import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from mentorchat.api.common import BaseRouter
from mentorchat.auth_config import current_active_user
from mentorchat.models import User
from mentorchat.schemas.conversation import (
    ConversationCreateRequest,
    ConversationDetail,
    ConversationIdResponse,
    ConversationSummary,
)
from mentorchat.schemas.message import MessageCreateRequest, MessageRead
from mentorchat.services.dependencies import get_messaging_service
from mentorchat.services.messaging_service import MessagingService

logger = logging.getLogger(__name__)
conversations_router_instance = APIRouter()
router = BaseRouter(router=conversations_router_instance, default_tags=["conversations"])


@router.post("/conversations", response_model=ConversationIdResponse)
async def get_or_create_conversation(
    request_data: ConversationCreateRequest,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Resolves (or lazily creates) the conversation between the caller and another user."""
    conversation_id = await service.get_or_create_conversation(
        user.id, request_data.other_user_id, request_data.appointment_id
    )
    return ConversationIdResponse(conversation_id=conversation_id)


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.get_user_conversations(user.id)


@router.get(
    "/conversations/by-appointment/{appointment_id}",
    response_model=ConversationIdResponse,
)
async def get_conversation_by_appointment(
    appointment_id: UUID,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    conversation_id = await service.get_conversation_by_appointment(appointment_id)
    return ConversationIdResponse(conversation_id=conversation_id)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.require_participant(conversation_id, user.id)
    return await service.get_conversation(conversation_id)


@router.get(
    "/conversations/{conversation_id}/messages", response_model=list[MessageRead]
)
async def list_messages(
    conversation_id: UUID,
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.require_participant(conversation_id, user.id)
    return await service.get_conversation_messages(
        conversation_id, limit=limit, offset=offset
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
    tags=["messages"],
)
async def send_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.send_message(
        conversation_id,
        user.id,
        request_data.content,
        attachment_url=request_data.attachment_url,
        attachment_type=request_data.attachment_type,
    )


@router.post(
    "/conversations/{conversation_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["messages"],
)
async def mark_conversation_read(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.mark_messages_as_read(conversation_id, user.id)

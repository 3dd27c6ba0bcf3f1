import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from mentorchat.auth_config import get_strategy, get_user_manager
from mentorchat.db import get_db_session
from mentorchat.schemas.message import MessageRead
from mentorchat.services.dependencies import create_messaging_service
from mentorchat.services.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
)

logger = logging.getLogger(__name__)
realtime_router = APIRouter(tags=["realtime"])

AUTH_COOKIE = "fastapiusersauth"

# Application-defined close codes (4000-4999)
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404

# Standard "internal error" close code
CLOSE_INTERNAL_ERROR = 1011


@realtime_router.websocket("/ws/conversations/{conversation_id}")
async def conversation_socket(
    websocket: WebSocket,
    conversation_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    user_manager=Depends(get_user_manager),
):
    """Pushes every new message of one conversation to a participant as JSON."""
    token = websocket.cookies.get(AUTH_COOKIE) or websocket.query_params.get("token")
    user = await get_strategy().read_token(token, user_manager) if token else None
    if user is None or not user.is_active:
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    service = create_messaging_service(session, current_user=user)
    try:
        await service.require_participant(conversation_id, user.id)
    except NotFoundError:
        await websocket.close(code=CLOSE_NOT_FOUND)
        return
    except PermissionDeniedError:
        await websocket.close(code=CLOSE_FORBIDDEN)
        return
    except ServiceError as e:
        logger.error(f"Could not open conversation socket: {e.message}")
        await websocket.close(code=CLOSE_INTERNAL_ERROR)
        return

    await websocket.accept()

    async def forward(message: MessageRead) -> None:
        await websocket.send_text(message.model_dump_json())

    subscription = service.subscribe_to_conversation(conversation_id, forward)
    logger.info(f"User {user.id} listening on conversation {conversation_id}")
    try:
        while True:
            # Inbound frames are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"User {user.id} left conversation {conversation_id}")
    finally:
        await subscription.unsubscribe()

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .common import UTCDateTime
from .user import UserProfile


class ConversationCreateRequest(BaseModel):
    other_user_id: UUID
    appointment_id: UUID | None = None


class ConversationIdResponse(BaseModel):
    conversation_id: UUID | None = None


class ConversationSummary(BaseModel):
    """One row of a user's inbox."""

    conversation_id: UUID
    other_user_id: UUID
    other_user_name: str
    other_user_email: str = ""
    other_user_avatar: str | None = None
    last_message_content: str | None = None
    last_message_time: UTCDateTime | None = None
    unread_count: int = 0
    has_unread: bool = False


class ParticipantRead(BaseModel):
    conversation_id: UUID
    user_id: UUID
    joined_at: UTCDateTime
    last_read_at: UTCDateTime | None = None
    user: UserProfile

    model_config = ConfigDict(from_attributes=True)


class ConversationDetail(BaseModel):
    id: UUID
    user1_id: UUID
    user2_id: UUID
    appointment_id: UUID | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime
    last_message_at: UTCDateTime | None = None
    participants: list[ParticipantRead] = []

    model_config = ConfigDict(from_attributes=True)

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .common import UTCDateTime


class MessageRead(BaseModel):
    """A message row as seen by clients, whether fetched or pushed in realtime."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str = ""
    attachment_url: str | None = None
    attachment_type: str | None = None
    read: bool = False
    read_at: UTCDateTime | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime | None = None
    deleted_at: UTCDateTime | None = None

    model_config = ConfigDict(from_attributes=True)


class MessageCreateRequest(BaseModel):
    content: str = ""
    attachment_url: str | None = None
    attachment_type: str | None = None

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import UTCDateTime


class NotificationRead(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: str
    sender_name: str | None = None
    sender_avatar: str | None = None
    action_url: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="details")
    read: bool = False
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

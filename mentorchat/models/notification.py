from sqlalchemy import JSON, Boolean, Column, ForeignKey, Text
from sqlalchemy.types import Uuid

from .base import BaseModel


class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    sender_name = Column(Text, nullable=True)
    sender_avatar = Column(Text, nullable=True)
    action_url = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)

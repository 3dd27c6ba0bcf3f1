from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, event, or_, update
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel
from .conversation import Conversation


class Message(BaseModel):
    __tablename__ = "messages"

    # deleted_at (inherited) is the soft-delete marker
    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False, index=True
    )
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False, default="")
    attachment_url = Column(Text, nullable=True)
    attachment_type = Column(Text, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", back_populates="messages", foreign_keys=[sender_id])


@event.listens_for(Message, "after_insert")
def advance_conversation_timestamps(mapper, connection, target):
    """Moves the parent conversation's activity timestamps forward on insert."""
    inserted_at = target.__dict__.get("created_at") or datetime.now(timezone.utc)
    connection.execute(
        update(Conversation.__table__)
        .where(Conversation.__table__.c.id == target.conversation_id)
        .where(
            or_(
                Conversation.__table__.c.last_message_at.is_(None),
                Conversation.__table__.c.last_message_at < inserted_at,
            )
        )
        .values(last_message_at=inserted_at, updated_at=inserted_at)
    )

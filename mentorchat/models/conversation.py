from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel


class Conversation(BaseModel):
    """Two-party thread. The pair is stored in canonical (sorted) order."""

    __tablename__ = "conversations"

    user1_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    user2_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    # Appointments live in another subsystem, so no foreign key here
    appointment_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    user1 = relationship("User", foreign_keys=[user1_id])
    user2 = relationship("User", foreign_keys=[user2_id])
    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )
    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_conversation_pair"),
        CheckConstraint("user1_id <> user2_id", name="ck_conversation_distinct_users"),
    )

    def other_user_id(self, user_id):
        return self.user2_id if self.user1_id == user_id else self.user1_id

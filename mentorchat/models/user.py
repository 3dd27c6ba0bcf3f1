import uuid

from fastapi_users.db import SQLAlchemyBaseUserTable
from sqlalchemy import Column, Enum as SQLAlchemyEnum, Text
from sqlalchemy.orm import relationship

from mentorchat.schemas.user import UserRole
from .base import BaseModel


# SQLAlchemyBaseUserTable requires a specific type for the ID. Uuid works.
class User(SQLAlchemyBaseUserTable[uuid.UUID], BaseModel):
    __tablename__ = "users"

    # email, hashed_password, is_active, is_superuser, is_verified are from SQLAlchemyBaseUserTable
    full_name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    specialty = Column(Text, nullable=True)  # Mentors only
    role = Column(SQLAlchemyEnum(UserRole), nullable=False, default=UserRole.PATIENT)

    participations = relationship(
        "ConversationParticipant",
        back_populates="user",
        foreign_keys="ConversationParticipant.user_id",
    )
    messages = relationship(
        "Message",
        back_populates="sender",
        foreign_keys="Message.sender_id",
    )

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split("@")[0]
        return "Unknown User"

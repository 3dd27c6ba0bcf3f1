# Makes 'models' a package and simplifies imports

from .base import BaseModel, metadata
from .conversation import Conversation
from .message import Message
from .notification import Notification
from .participant import ConversationParticipant
from .user import User

__all__ = [
    "BaseModel",
    "metadata",
    "User",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "Notification",
]

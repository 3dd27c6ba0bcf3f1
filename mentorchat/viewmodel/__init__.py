from .conversation_view import ConversationView, OutboundState, ViewMessage
from .messages_view_model import MessagesViewModel

__all__ = ["ConversationView", "OutboundState", "ViewMessage", "MessagesViewModel"]

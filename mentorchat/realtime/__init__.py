from .hub import RealtimeChannel, RealtimeHub, get_hub
from .subscription import ConversationSubscription, channel_name

__all__ = [
    "RealtimeChannel",
    "RealtimeHub",
    "get_hub",
    "ConversationSubscription",
    "channel_name",
]

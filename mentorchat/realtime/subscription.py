import inspect
import logging
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as PayloadValidationError

from mentorchat.schemas.message import MessageRead

from .hub import Change, RealtimeChannel, RealtimeHub

logger = logging.getLogger(__name__)

MessageCallback = Callable[[MessageRead], Any]


def channel_name(conversation_id: UUID) -> str:
    return f"conversation_{conversation_id}"


class ConversationSubscription:
    """Delivers messages inserted into one conversation to a callback.

    Raw row events are decoded into ``MessageRead`` before the callback sees
    them; rows that fail to decode are logged and dropped.
    """

    def __init__(
        self, hub: RealtimeHub, conversation_id: UUID, callback: MessageCallback
    ):
        self.conversation_id = conversation_id
        self._hub = hub
        self._callback = callback
        self._channel: RealtimeChannel | None = None

    @property
    def active(self) -> bool:
        return self._channel is not None

    def start(self) -> "ConversationSubscription":
        if self._channel is None:
            self._channel = (
                self._hub.channel(channel_name(self.conversation_id))
                .on(
                    "INSERT",
                    "messages",
                    self._handle,
                    filter={"conversation_id": self.conversation_id},
                )
                .subscribe()
            )
        return self

    async def _handle(self, change: Change) -> None:
        try:
            message = MessageRead.model_validate(change.get("new") or {})
        except PayloadValidationError as e:
            logger.warning(
                f"Dropping undecodable realtime row on {channel_name(self.conversation_id)}: {e}"
            )
            return
        result = self._callback(message)
        if inspect.isawaitable(result):
            await result

    async def unsubscribe(self) -> None:
        if self._channel is None:
            return
        channel, self._channel = self._channel, None
        await self._hub.remove_channel(channel)

    async def __aenter__(self) -> "ConversationSubscription":
        return self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.unsubscribe()

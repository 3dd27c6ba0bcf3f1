import asyncio
import logging
from typing import Callable
from uuid import UUID

from mentorchat.core.config import settings
from mentorchat.realtime.subscription import ConversationSubscription
from mentorchat.schemas.message import MessageRead
from mentorchat.schemas.user import UserProfile
from mentorchat.services.messaging_service import MessagingService
from mentorchat.services.responses import call_service

from .conversation_view import ConversationView, OutboundState, ViewMessage

logger = logging.getLogger(__name__)


class MessagesViewModel:
    """State behind a messages screen for one signed-in user.

    Talks to the service only through tagged results; failures surface as
    entries in ``notices`` instead of exceptions. At most one realtime
    subscription is open, for the active conversation.
    """

    def __init__(
        self,
        service: MessagingService,
        current_user_id: UUID,
        on_incoming: Callable[[MessageRead], None] | None = None,
    ):
        self.service = service
        self.current_user_id = current_user_id
        self.on_incoming = on_incoming  # e.g. play a sound
        self.conversations: dict[UUID, ConversationView] = {}
        self.unread_counts: dict[UUID, int] = {}
        self.contacts: list[UserProfile] = []
        self.active: ConversationView | None = None
        self.draft = ""
        self.notices: list[str] = []
        self._subscription: ConversationSubscription | None = None

    def _notify(self, text: str) -> None:
        logger.info(f"Notice for {self.current_user_id}: {text}")
        self.notices.append(text)

    async def load_contacts(self, user) -> list[UserProfile]:
        response = await call_service(self.service.get_available_contacts(user))
        if not response.ok:
            self._notify(f"Could not load contacts: {response.error}")
            return self.contacts
        self.contacts = response.data
        return self.contacts

    async def load_unread_counts(self) -> dict[UUID, int]:
        """Recomputes unread counts from the backend, replacing local ones."""
        response = await call_service(self.service.get_unread_counts(self.current_user_id))
        if not response.ok:
            logger.warning(f"Error loading unread counts: {response.error}")
            return self.unread_counts
        self.unread_counts = dict(response.data)
        for view in self.conversations.values():
            view.unread_count = self.unread_counts.get(view.other_user.id, 0)
        return self.unread_counts

    async def poll_unread_counts(self, interval: float | None = None) -> None:
        """Refreshes unread counts forever; run it as a task and cancel it."""
        interval = interval or settings.UNREAD_REFRESH_SECONDS
        while True:
            await asyncio.sleep(interval)
            await self.load_unread_counts()

    async def open_conversation(self, other_user: UserProfile) -> ConversationView | None:
        response = await call_service(
            self.service.get_or_create_conversation(self.current_user_id, other_user.id)
        )
        if not response.ok:
            self._notify(f"Could not open conversation: {response.error}")
            return None
        conversation_id = response.data

        history = await call_service(
            self.service.get_conversation_messages(conversation_id)
        )
        if not history.ok:
            self._notify(f"Could not load messages: {history.error}")
            return None

        view = self.conversations.get(conversation_id)
        if view is None:
            view = ConversationView.hydrate(conversation_id, other_user, history.data)
            self.conversations[conversation_id] = view
        else:
            # Catch up on anything sent while this conversation was not subscribed
            for message in history.data:
                view.merge(message)

        await self._subscribe(view)
        self.active = view

        self.unread_counts[other_user.id] = 0
        view.unread_count = 0
        marked = await call_service(
            self.service.mark_messages_as_read(conversation_id, self.current_user_id)
        )
        if not marked.ok:
            logger.warning(f"Error marking messages as read: {marked.error}")
        return view

    async def _subscribe(self, view: ConversationView) -> None:
        if self._subscription is not None:
            if self._subscription.conversation_id == view.id:
                return
            # Tear down first so the old channel can't deliver into the new view
            await self._subscription.unsubscribe()
            self._subscription = None
        self._subscription = self.service.subscribe_to_conversation(
            view.id, self.receive
        )

    async def send(
        self,
        content: str | None = None,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
    ) -> ViewMessage | None:
        """Optimistically appends the message, then settles it with the server reply.

        Sends ``content``, or the current draft when omitted; the draft is
        cleared before the backend is called.
        """
        view = self.active
        if content is None:
            content, self.draft = self.draft, ""
        content = content.strip()
        if view is None or (not content and not attachment_url):
            return None

        pending = view.add_pending(
            self.current_user_id, content, attachment_url, attachment_type
        )
        temp_id = pending.id
        response = await call_service(
            self.service.send_message(
                view.id, self.current_user_id, content, attachment_url, attachment_type
            )
        )
        outcome = view.reconcile(temp_id, response)
        if outcome == OutboundState.FAILED:
            pending.state = OutboundState.FAILED
            self._notify(f"Message not sent: {response.error}")
            return pending
        index = view.index_of(str(response.data.id))
        return view.messages[index] if index is not None else pending

    def receive(self, message: MessageRead) -> bool:
        """Merges a realtime message. Returns False for duplicates and unknown conversations."""
        view = self.conversations.get(message.conversation_id)
        if view is None:
            logger.debug(f"Ignoring message for unloaded conversation {message.conversation_id}")
            return False
        if not view.merge(message):
            logger.debug(f"Discarding duplicate message {message.id}")
            return False

        if message.sender_id != self.current_user_id:
            self.unread_counts[message.sender_id] = (
                self.unread_counts.get(message.sender_id, 0) + 1
            )
            view.unread_count += 1
            if self.on_incoming is not None:
                self.on_incoming(message)
        return True

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
        self.active = None

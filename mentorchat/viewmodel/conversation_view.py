"""Client-held conversation state.

Every outbound message moves through ``pending -> confirmed | failed``.
``ConversationView.reconcile`` is the only place that transition happens,
and ``ConversationView.merge`` is the only way server messages enter a view,
so the dedup and rollback rules live in exactly two methods.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from mentorchat.schemas.message import MessageRead
from mentorchat.schemas.user import UserProfile
from mentorchat.services.responses import ServiceResponse

TEMP_ID_PREFIX = "temp-"


class OutboundState(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class ViewMessage:
    id: str
    conversation_id: UUID
    sender_id: UUID
    content: str
    created_at: datetime
    attachment_url: str | None = None
    attachment_type: str | None = None
    read: bool = False
    state: OutboundState = OutboundState.CONFIRMED

    @classmethod
    def from_message(cls, message: MessageRead) -> "ViewMessage":
        return cls(
            id=str(message.id),
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            created_at=message.created_at,
            attachment_url=message.attachment_url,
            attachment_type=message.attachment_type,
            read=message.read,
        )

    @property
    def is_pending(self) -> bool:
        return self.state == OutboundState.PENDING


@dataclass
class ConversationView:
    id: UUID
    other_user: UserProfile
    messages: list[ViewMessage] = field(default_factory=list)
    unread_count: int = 0

    @classmethod
    def hydrate(
        cls, conversation_id: UUID, other_user: UserProfile, history: list[MessageRead]
    ) -> "ConversationView":
        view = cls(id=conversation_id, other_user=other_user)
        for message in history:
            view.merge(message)
        return view

    def index_of(self, message_id: str) -> int | None:
        for i, entry in enumerate(self.messages):
            if entry.id == message_id:
                return i
        return None

    def has_message(self, message_id: str) -> bool:
        return self.index_of(message_id) is not None

    def merge(self, message: MessageRead) -> bool:
        """Adds a server message unless its id is already present.

        Entries are kept in ``created_at`` order: an in-order arrival is
        appended, a late one is placed after every entry not newer than it.
        Returns False when the message was a duplicate.
        """
        if self.has_message(str(message.id)):
            return False
        entry = ViewMessage.from_message(message)
        position = len(self.messages)
        while position > 0 and self.messages[position - 1].created_at > entry.created_at:
            position -= 1
        self.messages.insert(position, entry)
        return True

    def add_pending(
        self,
        sender_id: UUID,
        content: str,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
    ) -> ViewMessage:
        entry = ViewMessage(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4()}",
            conversation_id=self.id,
            sender_id=sender_id,
            content=content,
            created_at=datetime.now(timezone.utc),
            attachment_url=attachment_url,
            attachment_type=attachment_type,
            state=OutboundState.PENDING,
        )
        self.messages.append(entry)
        return entry

    def reconcile(
        self, temp_id: str, response: ServiceResponse[MessageRead]
    ) -> OutboundState:
        """Settles a pending entry with the outcome of its send call.

        Success swaps the placeholder id for the server id in place (no
        reordering). If the realtime echo of the same message got here
        first, the placeholder is dropped instead. Failure removes the
        placeholder entirely.
        """
        index = self.index_of(temp_id)
        if index is None:
            return OutboundState.FAILED if not response.ok else OutboundState.CONFIRMED

        if not response.ok or response.data is None:
            del self.messages[index]
            return OutboundState.FAILED

        server_message = response.data
        if self.has_message(str(server_message.id)):
            del self.messages[index]
            return OutboundState.CONFIRMED

        entry = self.messages[index]
        entry.id = str(server_message.id)
        entry.read = server_message.read
        entry.state = OutboundState.CONFIRMED
        return OutboundState.CONFIRMED

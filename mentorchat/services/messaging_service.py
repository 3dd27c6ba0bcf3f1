import logging
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mentorchat.core.config import settings
from mentorchat.models import Conversation, User
from mentorchat.realtime.changes import bind_hub
from mentorchat.realtime.hub import RealtimeHub, get_hub
from mentorchat.realtime.subscription import ConversationSubscription, MessageCallback
from mentorchat.repositories.conversation_repository import ConversationRepository
from mentorchat.repositories.message_repository import MessageRepository
from mentorchat.repositories.participant_repository import ParticipantRepository
from mentorchat.repositories.user_repository import UserRepository
from mentorchat.schemas.conversation import (
    ConversationDetail,
    ConversationSummary,
    ParticipantRead,
)
from mentorchat.schemas.message import MessageRead
from mentorchat.schemas.user import UserProfile

from .exceptions import (
    AuthError,
    BackendError,
    ConversationNotFoundError,
    MessageNotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
    ValidationError,
)
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class MessagingService:
    """Conversation and message operations for one request or UI session.

    Holds no state of its own beyond its collaborators; ``current_user`` is
    the authenticated user, or None when there is no active session.
    """

    def __init__(
        self,
        conversation_repository: ConversationRepository,
        participant_repository: ParticipantRepository,
        message_repository: MessageRepository,
        user_repository: UserRepository,
        notification_service: NotificationService,
        hub: RealtimeHub | None = None,
        current_user: User | None = None,
    ):
        self.conv_repo = conversation_repository
        self.part_repo = participant_repository
        self.msg_repo = message_repository
        self.user_repo = user_repository
        self.notifications = notification_service
        self.hub = hub or get_hub()
        self.current_user = current_user
        # The session is shared via the repositories
        self.session = conversation_repository.session
        bind_hub(self.session, self.hub)

    async def get_or_create_conversation(
        self,
        user_a: UUID | None,
        user_b: UUID | None,
        appointment_id: UUID | None = None,
    ) -> UUID:
        """
        Returns the id of the conversation between two users, creating it on
        first contact. Argument order does not matter.

        When ``appointment_id`` is given the conversation is linked to it on a
        best-effort basis; a failed link is logged and otherwise ignored.
        """
        if not user_a or not user_b:
            raise ValidationError(
                "Both user IDs must be provided to create a conversation."
            )
        if user_a == user_b:
            raise ValidationError("Cannot create a conversation with yourself.")
        if self.current_user is None:
            raise AuthError("Authentication required to create conversations.")

        try:
            users = await self.user_repo.get_users_by_ids([user_a, user_b])
            missing = [str(uid) for uid in (user_a, user_b) if uid not in users]
            if missing:
                raise UserNotFoundError(f"User(s) not found: {', '.join(missing)}.")

            conversation, created = await self.conv_repo.get_or_create_conversation(
                user_a, user_b
            )
            conversation_id = conversation.id
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent create for the same pair
            await self.session.rollback()
            logger.info(f"Conversation for {user_a}/{user_b} created concurrently, reusing")
            existing = await self._find_pair_or_fail(user_a, user_b)
            conversation_id, created = existing.id, False
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error getting or creating conversation: {e}", exc_info=True)
            raise BackendError(
                "Could not create conversation. Please ensure the messaging system is set up correctly."
            ) from e

        logger.info(
            f"{'Created' if created else 'Reusing'} conversation {conversation_id} for {user_a}/{user_b}"
        )

        if appointment_id:
            await self._link_appointment(conversation_id, appointment_id)

        return conversation_id

    async def _find_pair_or_fail(self, user_a: UUID, user_b: UUID) -> Conversation:
        try:
            existing = await self.conv_repo.find_conversation_for_pair(user_a, user_b)
        except SQLAlchemyError as e:
            logger.error(f"Database error re-reading conversation: {e}", exc_info=True)
            raise BackendError("Could not create conversation.") from e
        if existing is None:
            raise BackendError("Could not create conversation.")
        return existing

    async def _link_appointment(self, conversation_id: UUID, appointment_id: UUID) -> None:
        try:
            await self.conv_repo.set_appointment(conversation_id, appointment_id)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(
                f"Could not link conversation {conversation_id} to appointment {appointment_id}: {e}"
            )

    async def get_user_conversations(self, user_id: UUID) -> Sequence[ConversationSummary]:
        """Inbox for ``user_id``, most recently active first."""
        try:
            conversations = await self.conv_repo.get_user_conversations(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching user conversations: {e}", exc_info=True)
            raise BackendError(
                "Could not fetch conversations. Please ensure the messaging system is set up correctly."
            ) from e
        logger.debug(f"Found {len(conversations)} conversations for user {user_id}")
        return conversations

    async def get_conversation(self, conversation_id: UUID) -> ConversationDetail:
        """Conversation row plus both participants enriched with their profiles."""
        try:
            conversation = await self.conv_repo.get_conversation_details(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching conversation: {e}", exc_info=True)
            raise BackendError("Could not fetch conversation details.") from e
        if conversation is None:
            raise ConversationNotFoundError(
                f"Conversation '{conversation_id}' not found."
            )

        participants = [
            ParticipantRead(
                conversation_id=p.conversation_id,
                user_id=p.user_id,
                joined_at=p.joined_at,
                last_read_at=p.last_read_at,
                user=UserProfile.from_user(p.user) if p.user else UserProfile.unknown(p.user_id),
            )
            for p in conversation.participants
        ]
        return ConversationDetail(
            id=conversation.id,
            user1_id=conversation.user1_id,
            user2_id=conversation.user2_id,
            appointment_id=conversation.appointment_id,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            last_message_at=conversation.last_message_at,
            participants=participants,
        )

    async def require_participant(self, conversation_id: UUID, user_id: UUID) -> None:
        """Raises unless the conversation exists and ``user_id`` belongs to it."""
        try:
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
            is_member = conversation is not None and await self.part_repo.is_participant(
                conversation_id, user_id
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error checking participant: {e}", exc_info=True)
            raise BackendError(
                "Could not verify sender is a participant in this conversation."
            ) from e
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation '{conversation_id}' not found.")
        if not is_member:
            raise PermissionDeniedError("User is not a participant in this conversation.")

    async def get_conversation_messages(
        self, conversation_id: UUID, limit: int | None = None, offset: int = 0
    ) -> list[MessageRead]:
        """
        One page of active (not deleted) messages in chronological order.
        ``offset=0`` is the newest page.
        """
        if limit is None:
            limit = settings.MESSAGE_PAGE_SIZE
        if limit < 1:
            raise ValidationError("limit must be at least 1.")
        if offset < 0:
            raise ValidationError("offset cannot be negative.")
        limit = min(limit, settings.MAX_MESSAGE_PAGE_SIZE)

        try:
            messages = await self.msg_repo.get_conversation_messages(
                conversation_id, limit=limit, offset=offset
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching messages: {e}", exc_info=True)
            raise BackendError(
                "Could not fetch messages. Please ensure the messaging system is set up correctly."
            ) from e
        return [MessageRead.model_validate(m) for m in messages]

    async def get_message(self, message_id: UUID) -> MessageRead:
        """Direct lookup by id; soft-deleted messages are returned with deleted_at set."""
        try:
            message = await self.msg_repo.get_message_by_id(message_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching message: {e}", exc_info=True)
            raise BackendError("Could not fetch message.") from e
        if message is None:
            raise MessageNotFoundError(f"Message '{message_id}' not found.")
        return MessageRead.model_validate(message)

    async def send_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
    ) -> MessageRead:
        """
        Stores a message from ``sender_id`` and returns it with its server id.

        The conversation must exist and the sender must be one of its
        participants. A "new message" notification for the other participant
        is attempted afterwards; its failure does not fail the send.
        """
        content = content or ""
        if not content.strip() and not attachment_url:
            raise ValidationError("Message content cannot be empty.")

        try:
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching conversation: {e}", exc_info=True)
            raise BackendError("Could not verify conversation exists.") from e
        if conversation is None:
            raise ConversationNotFoundError("Could not find conversation.")

        try:
            is_member = await self.part_repo.is_participant(conversation_id, sender_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error checking participant: {e}", exc_info=True)
            raise BackendError(
                "Could not verify sender is a participant in this conversation."
            ) from e
        if not is_member:
            raise PermissionDeniedError(
                "Sender is not a participant in this conversation."
            )

        recipient_id = conversation.other_user_id(sender_id)
        try:
            new_message = await self.msg_repo.create_message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                attachment_url=attachment_url,
                attachment_type=attachment_type,
            )
            message = MessageRead.model_validate(new_message)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error sending message: {e}", exc_info=True)
            raise BackendError(
                "Could not send message. Please ensure the messaging system is set up correctly."
            ) from e

        logger.info(f"Message {message.id} sent in conversation {conversation_id}")

        try:
            await self._notify_recipient(recipient_id, message)
        except Exception as e:
            logger.warning(f"Failed to create message notification: {e}")

        return message

    async def _notify_recipient(self, recipient_id: UUID, message: MessageRead) -> None:
        sender = await self.user_repo.get_user_by_id(message.sender_id)
        sender_name = sender.full_name if sender and sender.full_name else "Someone"
        limit = settings.NOTIFICATION_PREVIEW_LENGTH
        preview = message.content[:limit] + ("..." if len(message.content) > limit else "")

        await self.notifications.create_notification(
            user_id=recipient_id,
            title="New Message",
            message=f"{sender_name} sent you a message: {preview}",
            type="message",
            sender_name=sender_name,
            sender_avatar=sender.avatar_url if sender else None,
            action_url=f"/messages/{message.conversation_id}",
            details={
                "conversation_id": str(message.conversation_id),
                "sender_id": str(message.sender_id),
                "message_id": str(message.id),
            },
        )

    async def mark_messages_as_read(self, conversation_id: UUID, user_id: UUID) -> int:
        """
        Flags every unread message from the other participant as read, then
        advances the caller's ``last_read_at``. The two steps commit
        separately; if the second fails the read flags stay set.

        Returns the number of messages newly flagged.
        """
        await self.require_participant(conversation_id, user_id)
        now = datetime.now(timezone.utc)

        try:
            flagged = await self.msg_repo.mark_messages_as_read(
                conversation_id, user_id, read_at=now
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error marking messages as read: {e}", exc_info=True)
            raise BackendError("Could not mark messages as read.") from e

        try:
            await self.part_repo.advance_last_read(conversation_id, user_id, read_at=now)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error updating last read timestamp: {e}", exc_info=True)
            raise BackendError("Could not update read status.") from e

        logger.info(f"Marked {flagged} messages read in {conversation_id} for {user_id}")
        return flagged

    async def delete_message(self, message_id: UUID, user_id: UUID) -> None:
        """
        Soft-deletes a message. Only the sender may delete it; deleting your
        own already-deleted message succeeds without changes.
        """
        try:
            affected = await self.msg_repo.soft_delete_message(
                message_id, user_id, deleted_at=datetime.now(timezone.utc)
            )
            await self.session.commit()
            existing = None if affected else await self.msg_repo.get_message_by_id(message_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database error deleting message: {e}", exc_info=True)
            raise BackendError("Could not delete message.") from e

        if affected:
            logger.info(f"Message {message_id} deleted by {user_id}")
            return
        if existing is None:
            raise MessageNotFoundError(f"Message '{message_id}' not found.")
        if existing.sender_id != user_id:
            raise PermissionDeniedError("Only the sender can delete this message.")

    def subscribe_to_conversation(
        self, conversation_id: UUID, callback: MessageCallback
    ) -> ConversationSubscription:
        """Starts delivering new messages of one conversation to ``callback``.

        Call ``unsubscribe()`` on the returned handle to release the channel.
        Must be called from a running event loop.
        """
        logger.debug(f"Subscribing to conversation {conversation_id}")
        return ConversationSubscription(self.hub, conversation_id, callback).start()

    async def get_conversation_by_appointment(self, appointment_id: UUID) -> UUID | None:
        try:
            return await self.conv_repo.get_conversation_id_by_appointment(appointment_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching conversation by appointment: {e}", exc_info=True)
            raise BackendError("Could not fetch conversation for this appointment.") from e

    async def get_unread_counts(self, user_id: UUID) -> dict[UUID, int]:
        """Unread messages addressed to ``user_id``, keyed by sender."""
        try:
            return await self.msg_repo.count_unread_by_sender(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error counting unread messages: {e}", exc_info=True)
            raise BackendError("Could not load unread counts.") from e

    async def get_available_contacts(self, user: User) -> list[UserProfile]:
        try:
            contacts = await self.user_repo.list_contacts(user)
        except SQLAlchemyError as e:
            logger.error(f"Database error loading contacts: {e}", exc_info=True)
            raise BackendError("Could not load contacts.") from e
        return [UserProfile.from_user(contact) for contact in contacts]

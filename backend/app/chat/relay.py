"""Message relay: persist-then-broadcast for chat, plus typing and read signals.

Ordering:
    A message is broadcast only after the store has accepted it, and the
    broadcast is awaited before the sender's next event is processed. Every
    connection currently in the room therefore sees one sender's messages
    in persistence order. Connections that join later rely on the history
    replayed by the room registry.

Membership is re-checked on every send, not only at join time, because
group membership and friendships can change during a long-lived
connection.
"""
import logging
from typing import Optional

from app.errors import ForbiddenError, InvalidInputError, NotFoundError
from app.notifications.service import NotificationService
from app.store import DocumentStore
from app.store.schemas import EntityType, MessageRecord, MessageView, NotificationType

from .manager import ConnectionManager
from .rooms import RoomRegistry, attach_sender, chat_participants, require_id
from .session import ConnectionSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_LENGTH = 500

# Server -> client events emitted by the relay
GROUP_MESSAGE_EVENT = "groupMessage"
PRIVATE_MESSAGE_EVENT = "privateMessage"
USER_TYPING_EVENT = "userTyping"
USER_STOPPED_TYPING_EVENT = "userStoppedTyping"
MESSAGE_READ_STATUS_EVENT = "messageReadStatus"


class MessageRelay:
    """Validates, persists and fans out chat traffic for one process."""

    def __init__(
        self,
        store: DocumentStore,
        connections: ConnectionManager,
        rooms: RoomRegistry,
        notifications: NotificationService,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
    ) -> None:
        self.store = store
        self.connections = connections
        self.rooms = rooms
        self.notifications = notifications
        self.max_content_length = max_content_length

    def _clean_content(self, content: Optional[str]) -> str:
        if not isinstance(content, str) or not content.strip():
            raise InvalidInputError("Message content is required.")
        content = content.strip()
        if len(content) > self.max_content_length:
            raise InvalidInputError(
                f"Message cannot exceed {self.max_content_length} characters"
            )
        return content

    # =========================================================================
    # Chat messages
    # =========================================================================

    async def send_group_message(
        self, session: ConnectionSession, group_id: str, content: Optional[str]
    ) -> MessageView:
        """Persist a group message and broadcast it to the group room.

        Raises:
            NotFoundError: Unknown group.
            ForbiddenError: Sender is not a member/admin (checked at send time).
            InvalidInputError: Empty or oversized content.
            PersistenceError: The message was not stored; nothing is broadcast.
        """
        user = session.require_active()
        group = await self.rooms.authorize_group(user, group_id)
        text = self._clean_content(content)

        saved = await self.store.save_message(
            MessageRecord(sender=user.id, group=group.id, content=text)
        )
        view = attach_sender(saved, user)
        reached = await self.connections.broadcast(
            group.id, GROUP_MESSAGE_EVENT, view.model_dump(mode="json")
        )
        logger.info(
            f"[Relay] Message {saved.id} sent to group {group.id} by {user.username} "
            f"({reached} connection(s))"
        )
        return view

    async def send_private_message(
        self, session: ConnectionSession, recipient_id: str, content: Optional[str]
    ) -> MessageView:
        """Persist a private message, broadcast it, and notify an absent recipient.

        The ``new_private_message`` notification is created only when none of
        the recipient's connections is subscribed to the conversation room.

        Raises:
            InvalidTargetError: Recipient is the sender.
            ForbiddenError: Not mutual friends and sender is not a global admin.
            InvalidInputError: Empty or oversized content.
            PersistenceError: The message was not stored; nothing is broadcast.
        """
        user = session.require_active()
        chat_identifier = await self.rooms.authorize_private(user, recipient_id)
        text = self._clean_content(content)

        saved = await self.store.save_message(
            MessageRecord(
                sender=user.id,
                recipient=recipient_id,
                chatIdentifier=chat_identifier,
                content=text,
            )
        )
        view = attach_sender(saved, user)
        await self.connections.broadcast(
            chat_identifier, PRIVATE_MESSAGE_EVENT, view.model_dump(mode="json")
        )
        logger.info(f"[Relay] Private message {saved.id} sent in {chat_identifier}")

        if recipient_id != user.id and not self.connections.is_user_in_room(
            recipient_id, chat_identifier
        ):
            await self.notifications.notify(
                recipient_id,
                NotificationType.NEW_PRIVATE_MESSAGE,
                sender_id=user.id,
                entity_id=saved.id,
                entity_type=EntityType.MESSAGE,
            )
        return view

    # =========================================================================
    # Typing indicators
    # =========================================================================

    async def _typing_room(self, session: ConnectionSession, data: dict) -> dict:
        """Resolve the room a typing signal targets and describe it."""
        user = session.require_active()
        group_id = data.get("groupId")
        recipient_id = data.get("recipientId")
        if (group_id is None) == (recipient_id is None):
            raise InvalidInputError("Exactly one of groupId or recipientId is required.")
        if group_id is not None:
            group = await self.rooms.authorize_group(user, group_id)
            room = {"roomId": group.id, "groupId": group.id}
        else:
            chat_identifier = await self.rooms.authorize_private(user, recipient_id)
            room = {"roomId": chat_identifier, "chatIdentifier": chat_identifier}
        if not self.connections.is_subscribed(session, room["roomId"]):
            raise ForbiddenError("Join the chat before sending typing indicators.")
        return room

    async def typing(self, session: ConnectionSession, data: dict) -> None:
        await self._signal_typing(session, data, USER_TYPING_EVENT)

    async def stop_typing(self, session: ConnectionSession, data: dict) -> None:
        await self._signal_typing(session, data, USER_STOPPED_TYPING_EVENT)

    async def _signal_typing(self, session: ConnectionSession, data: dict, event: str) -> None:
        room = await self._typing_room(session, data)
        room_id = room.pop("roomId")
        payload = {"userId": session.user.id, "username": session.user.username, **room}
        await self.connections.broadcast_except(room_id, event, payload, exclude=session)

    # =========================================================================
    # Read receipts
    # =========================================================================

    async def message_read(
        self, session: ConnectionSession, message_id: str, chat_identifier: Optional[str] = None
    ) -> MessageRecord:
        """Add the reader to a message's ``readBy`` set and broadcast the new status.

        Idempotent: reading the same message twice leaves a single entry.

        Raises:
            NotFoundError: Unknown message.
            InvalidInputError: ``chat_identifier`` does not match the message.
            ForbiddenError: Reader is not a participant of the message's room.
        """
        user = session.require_active()
        message_id = require_id(message_id, "Message ID")
        if chat_identifier is not None and not isinstance(chat_identifier, str):
            raise InvalidInputError("Malformed chat identifier: expected a string")
        message = await self.store.find_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")

        room_id = message.room_id
        if chat_identifier and chat_identifier != room_id:
            raise InvalidInputError("Message does not belong to this chat")
        if message.chatIdentifier:
            user = await self.rooms.current_user(user)
            if user.id not in chat_participants(message.chatIdentifier) and not user.is_admin:
                raise ForbiddenError("You are not a participant in this conversation")
        else:
            await self.rooms.authorize_group(user, message.group)

        updated = await self.store.add_message_reader(message_id, user.id)
        if updated is None:
            raise NotFoundError("Message not found")
        await self.connections.broadcast(
            room_id,
            MESSAGE_READ_STATUS_EVENT,
            {
                "messageId": updated.id,
                "chatIdentifier": room_id,
                "userId": user.id,
                "readBy": list(updated.readBy),
            },
        )
        return updated


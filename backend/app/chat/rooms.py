"""Room registry: chat identifiers, room authorization and history replay.

Two kinds of logical rooms exist besides personal channels:

    - Group rooms, keyed by group id. Open to group members, the group
      admin and global admins.
    - Private rooms, keyed by the chat identifier derived from the two
      participants' ids. Open to mutual friends and global admins.

Joining is purely additive for the lifetime of a connection; there is no
leave operation. All subscriptions are dropped on disconnect.
"""
import logging
from typing import Any, List, Optional, Tuple

from app.errors import ForbiddenError, InvalidInputError, InvalidTargetError, NotFoundError
from app.store import DESCENDING, DocumentStore
from app.store.schemas import GroupRecord, MessageRecord, MessageView, SenderInfo, UserRecord

from .manager import ConnectionManager
from .session import ConnectionSession

logger = logging.getLogger(__name__)

CHAT_IDENTIFIER_SEPARATOR = "_"

DEFAULT_HISTORY_LIMIT = 50


def require_id(value: Any, label: str) -> str:
    """Return ``value`` if it is a non-empty string id, else raise ``InvalidInputError``."""
    if value is None or value == "":
        raise InvalidInputError(f"{label} is required.")
    if not isinstance(value, str):
        raise InvalidInputError(f"Malformed {label}: expected a string")
    return value


def derive_chat_identifier(user_a: str, user_b: str) -> str:
    """Canonical private-chat room id for two users.

    The ids are sorted, so ``derive_chat_identifier(a, b) == derive_chat_identifier(b, a)``.

    Raises:
        InvalidInputError: An id is empty, not a string or contains the separator.
    """
    for user_id in (user_a, user_b):
        if not isinstance(user_id, str) or not user_id or CHAT_IDENTIFIER_SEPARATOR in user_id:
            raise InvalidInputError(f"Malformed user id: {user_id!r}")
    return CHAT_IDENTIFIER_SEPARATOR.join(sorted((user_a, user_b)))


def chat_participants(chat_identifier: str) -> Tuple[str, ...]:
    """Split a chat identifier back into its two user ids."""
    parts = tuple(chat_identifier.split(CHAT_IDENTIFIER_SEPARATOR))
    if len(parts) != 2 or not all(parts):
        raise InvalidInputError(f"Malformed chat identifier: {chat_identifier!r}")
    return parts


def can_access_group(user: UserRecord, group: GroupRecord) -> bool:
    """Members, the group admin and global admins may use a group room."""
    return user.is_admin or group.admin == user.id or user.id in group.members


class RoomRegistry:
    """Authorizes room joins and subscribes connections through the manager."""

    def __init__(
        self,
        store: DocumentStore,
        connections: ConnectionManager,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.store = store
        self.connections = connections
        self.history_limit = history_limit

    # =========================================================================
    # Authorization
    # =========================================================================

    async def current_user(self, user: UserRecord) -> UserRecord:
        """Reload ``user`` so role changes made mid-session take effect.

        Raises:
            ForbiddenError: The account no longer exists.
        """
        fresh = await self.store.find_user_by_id(user.id)
        if fresh is None:
            raise ForbiddenError("Your account no longer exists")
        return fresh

    async def authorize_group(self, user: UserRecord, group_id: str) -> GroupRecord:
        """Load a group and check that ``user`` may use its room.

        Raises:
            InvalidInputError: Missing or malformed group id.
            NotFoundError: The group does not exist.
            ForbiddenError: Not a member, the group admin or a global admin.
        """
        group_id = require_id(group_id, "Group ID")
        user = await self.current_user(user)
        group = await self.store.find_group_by_id(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        if not can_access_group(user, group):
            raise ForbiddenError("You are not a member of this group")
        return group

    async def authorize_private(self, user: UserRecord, other_user_id: str) -> str:
        """Check that ``user`` may chat privately with ``other_user_id``.

        Returns:
            The derived chat identifier.

        Raises:
            InvalidTargetError: The other user is the caller.
            InvalidInputError: Malformed user id.
            ForbiddenError: Not mutual friends and caller is not a global admin.
            NotFoundError: A global admin targeted a user that does not exist.
        """
        other_user_id = require_id(other_user_id, "Recipient ID")
        if other_user_id == user.id:
            raise InvalidTargetError("You cannot start a private chat with yourself")
        chat_identifier = derive_chat_identifier(user.id, other_user_id)
        user = await self.current_user(user)
        if not user.is_admin and not await self.store.are_friends(user.id, other_user_id):
            raise ForbiddenError("You can only chat privately with friends")
        if user.is_admin and await self.store.find_user_by_id(other_user_id) is None:
            raise NotFoundError("User not found")
        return chat_identifier

    # =========================================================================
    # Joins
    # =========================================================================

    async def join_group_room(
        self, session: ConnectionSession, group_id: str
    ) -> Tuple[GroupRecord, List[MessageView]]:
        """Subscribe a connection to a group room.

        Returns:
            Tuple of (group, history) where history holds up to
            ``history_limit`` most recent messages, oldest first.
        """
        user = session.require_active()
        group = await self.authorize_group(user, group_id)
        self.connections.subscribe(session, group.id)
        logger.info(f"[Rooms] {user.username} joined group: {group.name} ({group.id})")
        history = await self.recent_history({"group": group.id})
        return group, history

    async def join_private_room(
        self, session: ConnectionSession, other_user_id: str
    ) -> Tuple[str, Optional[UserRecord], List[MessageView]]:
        """Subscribe a connection to the private room shared with another user.

        Returns:
            Tuple of (chat_identifier, other_user, history).
        """
        user = session.require_active()
        chat_identifier = await self.authorize_private(user, other_user_id)
        other_user = await self.store.find_user_by_id(other_user_id)
        self.connections.subscribe(session, chat_identifier)
        logger.info(f"[Rooms] {user.username} joined private chat {chat_identifier}")
        history = await self.recent_history({"chatIdentifier": chat_identifier})
        return chat_identifier, other_user, history

    # =========================================================================
    # History
    # =========================================================================

    async def recent_history(self, filter: dict, limit: Optional[int] = None) -> List[MessageView]:
        """Most recent messages matching ``filter``, returned oldest first."""
        limit = limit or self.history_limit
        newest_first = await self.store.query_messages(filter, limit, DESCENDING)
        return await self.with_senders(list(reversed(newest_first)))

    async def with_senders(self, messages: List[MessageRecord]) -> List[MessageView]:
        """Attach sender display fields, looking each sender up once."""
        senders = {}
        for sender_id in {m.sender for m in messages}:
            senders[sender_id] = await self.store.find_user_by_id(sender_id)
        return [attach_sender(m, senders.get(m.sender)) for m in messages]


def attach_sender(message: MessageRecord, sender: Optional[UserRecord]) -> MessageView:
    info = SenderInfo.from_user(sender) if sender else SenderInfo(id=message.sender)
    return MessageView(**{**message.model_dump(), "sender": info})

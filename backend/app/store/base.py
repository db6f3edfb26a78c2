"""Abstract document store consumed by the realtime core.

The store is an external collaborator: every operation is an atomic,
read-after-write consistent document operation. Implementations raise
``PersistenceError`` when the backing store is unavailable or rejects a
write; they never raise for "not found" (they return ``None`` instead).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .schemas import GroupRecord, MessageRecord, NotificationRecord, UserRecord

# Sort orders accepted by query_messages
ASCENDING = 1
DESCENDING = -1


class DocumentStore(ABC):
    """Async find/save/update-many interface over users, groups, messages and notifications."""

    # ------------------------------------------------------------------
    # Users and groups
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def save_user(self, user: UserRecord) -> UserRecord:
        ...

    @abstractmethod
    async def find_group_by_id(self, group_id: str) -> Optional[GroupRecord]:
        ...

    @abstractmethod
    async def save_group(self, group: GroupRecord) -> GroupRecord:
        ...

    async def are_friends(self, user_a: str, user_b: str) -> bool:
        """True when each user lists the other as a friend."""
        a = await self.find_user_by_id(user_a)
        b = await self.find_user_by_id(user_b)
        if a is None or b is None:
            return False
        return user_b in a.friends and user_a in b.friends

    @abstractmethod
    async def add_friend_request(self, recipient_id: str, sender_id: str) -> None:
        ...

    @abstractmethod
    async def remove_friend_request(self, recipient_id: str, sender_id: str) -> None:
        ...

    @abstractmethod
    async def add_friendship(self, user_a: str, user_b: str) -> None:
        ...

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_message(self, message: MessageRecord) -> MessageRecord:
        ...

    @abstractmethod
    async def find_message(self, message_id: str) -> Optional[MessageRecord]:
        ...

    @abstractmethod
    async def add_message_reader(self, message_id: str, user_id: str) -> Optional[MessageRecord]:
        """Add ``user_id`` to ``readBy`` if absent; return the updated message."""

    @abstractmethod
    async def query_messages(
        self,
        filter: Dict[str, Any],
        limit: int,
        order: int = DESCENDING,
    ) -> List[MessageRecord]:
        """Return up to ``limit`` messages matching ``filter`` sorted by createdAt.

        ``filter`` is an equality match on top-level fields
        (e.g. ``{"group": gid}`` or ``{"chatIdentifier": cid}``).
        """

    @abstractmethod
    async def list_chat_identifiers(self, user_id: str) -> List[str]:
        """Distinct chat identifiers of private messages sent or received by a user."""

    @abstractmethod
    async def mark_conversation_read(self, chat_identifier: str, reader_id: str) -> int:
        """Add ``reader_id`` to readBy of every message addressed to them; return count changed."""

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_notification(self, notification: NotificationRecord) -> NotificationRecord:
        ...

    @abstractmethod
    async def find_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        ...

    @abstractmethod
    async def query_notifications(self, recipient_id: str) -> List[NotificationRecord]:
        """All notifications for a recipient, newest first."""

    @abstractmethod
    async def count_unread_notifications(self, recipient_id: str) -> int:
        ...

    @abstractmethod
    async def mark_notification_read(self, notification_id: str) -> Optional[NotificationRecord]:
        ...

    @abstractmethod
    async def mark_all_notifications_read(self, recipient_id: str) -> int:
        ...

    @abstractmethod
    async def delete_notification(self, notification_id: str) -> bool:
        ...

    async def close(self) -> None:
        """Release any resources held by the store."""

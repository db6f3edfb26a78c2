"""In-memory document store.

Used by default in development and by the test-suite. Documents are
deep-copied on the way in and out so callers never share mutable state
with the store.

Thread Safety:
    Designed for a single asyncio event loop. Every operation runs to
    completion without awaiting, so each one is atomic with respect to
    other tasks on the loop.
"""
import itertools
from typing import Any, Dict, List, Optional, Tuple

from .base import ASCENDING, DESCENDING, DocumentStore
from .schemas import GroupRecord, MessageRecord, NotificationRecord, UserRecord, utcnow


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed implementation of :class:`DocumentStore`."""

    def __init__(self) -> None:
        self.users: Dict[str, UserRecord] = {}
        self.groups: Dict[str, GroupRecord] = {}
        # message_id -> (insertion sequence, message)
        self.messages: Dict[str, Tuple[int, MessageRecord]] = {}
        self.notifications: Dict[str, Tuple[int, NotificationRecord]] = {}
        self._seq = itertools.count()

    # ------------------------------------------------------------------
    # Users and groups
    # ------------------------------------------------------------------

    async def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def save_user(self, user: UserRecord) -> UserRecord:
        self.users[user.id] = user.model_copy(deep=True)
        return user

    async def find_group_by_id(self, group_id: str) -> Optional[GroupRecord]:
        group = self.groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def save_group(self, group: GroupRecord) -> GroupRecord:
        self.groups[group.id] = group.model_copy(deep=True)
        return group

    async def add_friend_request(self, recipient_id: str, sender_id: str) -> None:
        recipient = self.users.get(recipient_id)
        if recipient and sender_id not in recipient.friendRequests:
            recipient.friendRequests.append(sender_id)

    async def remove_friend_request(self, recipient_id: str, sender_id: str) -> None:
        recipient = self.users.get(recipient_id)
        if recipient and sender_id in recipient.friendRequests:
            recipient.friendRequests.remove(sender_id)

    async def add_friendship(self, user_a: str, user_b: str) -> None:
        for owner, friend in ((user_a, user_b), (user_b, user_a)):
            user = self.users.get(owner)
            if user and friend not in user.friends:
                user.friends.append(friend)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def save_message(self, message: MessageRecord) -> MessageRecord:
        self.messages[message.id] = (next(self._seq), message.model_copy(deep=True))
        return message

    async def find_message(self, message_id: str) -> Optional[MessageRecord]:
        entry = self.messages.get(message_id)
        return entry[1].model_copy(deep=True) if entry else None

    async def add_message_reader(self, message_id: str, user_id: str) -> Optional[MessageRecord]:
        entry = self.messages.get(message_id)
        if entry is None:
            return None
        message = entry[1]
        if user_id not in message.readBy:
            message.readBy.append(user_id)
            message.updatedAt = utcnow()
        return message.model_copy(deep=True)

    async def query_messages(
        self,
        filter: Dict[str, Any],
        limit: int,
        order: int = DESCENDING,
    ) -> List[MessageRecord]:
        matches = [
            (seq, msg) for seq, msg in self.messages.values()
            if all(getattr(msg, key, None) == value for key, value in filter.items())
        ]
        matches.sort(key=lambda item: (item[1].createdAt, item[0]), reverse=order != ASCENDING)
        return [msg.model_copy(deep=True) for _, msg in matches[:limit]]

    async def list_chat_identifiers(self, user_id: str) -> List[str]:
        seen: Dict[str, None] = {}
        for _, msg in self.messages.values():
            if msg.chatIdentifier and user_id in (msg.sender, msg.recipient):
                seen.setdefault(msg.chatIdentifier, None)
        return list(seen)

    async def mark_conversation_read(self, chat_identifier: str, reader_id: str) -> int:
        changed = 0
        for _, msg in self.messages.values():
            if (msg.chatIdentifier == chat_identifier
                    and msg.recipient == reader_id
                    and reader_id not in msg.readBy):
                msg.readBy.append(reader_id)
                msg.updatedAt = utcnow()
                changed += 1
        return changed

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def save_notification(self, notification: NotificationRecord) -> NotificationRecord:
        self.notifications[notification.id] = (next(self._seq), notification.model_copy(deep=True))
        return notification

    async def find_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        entry = self.notifications.get(notification_id)
        return entry[1].model_copy(deep=True) if entry else None

    async def query_notifications(self, recipient_id: str) -> List[NotificationRecord]:
        matches = [
            (seq, n) for seq, n in self.notifications.values() if n.recipient == recipient_id
        ]
        matches.sort(key=lambda item: (item[1].createdAt, item[0]), reverse=True)
        return [n.model_copy(deep=True) for _, n in matches]

    async def count_unread_notifications(self, recipient_id: str) -> int:
        return sum(
            1 for _, n in self.notifications.values()
            if n.recipient == recipient_id and not n.read
        )

    async def mark_notification_read(self, notification_id: str) -> Optional[NotificationRecord]:
        entry = self.notifications.get(notification_id)
        if entry is None:
            return None
        notification = entry[1]
        notification.read = True
        notification.updatedAt = utcnow()
        return notification.model_copy(deep=True)

    async def mark_all_notifications_read(self, recipient_id: str) -> int:
        changed = 0
        for _, n in self.notifications.values():
            if n.recipient == recipient_id and not n.read:
                n.read = True
                n.updatedAt = utcnow()
                changed += 1
        return changed

    async def delete_notification(self, notification_id: str) -> bool:
        return self.notifications.pop(notification_id, None) is not None

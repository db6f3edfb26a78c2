"""Friendship actions that notify the other user.

Both actions mutate the friend graph first and then call the
notification service through ``notify``; a failed notification is logged
and never undoes or fails the action itself.
"""
import logging

from app.errors import InvalidInputError, InvalidTargetError, NotFoundError
from app.notifications.service import NotificationService
from app.store import DocumentStore
from app.store.schemas import EntityType, NotificationType, UserRecord

logger = logging.getLogger(__name__)


class FriendshipService:
    def __init__(self, store: DocumentStore, notifications: NotificationService) -> None:
        self.store = store
        self.notifications = notifications

    async def send_request(self, sender: UserRecord, recipient_id: str) -> UserRecord:
        """Record a pending friend request from ``sender`` to ``recipient_id``.

        Returns:
            The recipient.

        Raises:
            InvalidTargetError: The sender targeted themselves.
            NotFoundError: Unknown recipient.
            InvalidInputError: Already friends, or a request is already pending.
        """
        if recipient_id == sender.id:
            raise InvalidTargetError("You cannot send a friend request to yourself")
        recipient = await self.store.find_user_by_id(recipient_id)
        if recipient is None:
            raise NotFoundError("User not found")
        if sender.id in recipient.friends:
            raise InvalidInputError("You are already friends with this user")
        if sender.id in recipient.friendRequests:
            raise InvalidInputError("Friend request already sent")

        await self.store.add_friend_request(recipient.id, sender.id)
        logger.info(f"[Friends] {sender.username} sent a friend request to {recipient.username}")

        await self.notifications.notify(
            recipient.id,
            NotificationType.FRIEND_REQUEST,
            sender_id=sender.id,
            entity_id=sender.id,
            entity_type=EntityType.USER,
        )
        return recipient

    async def accept_request(self, user: UserRecord, sender_id: str) -> UserRecord:
        """Accept a pending request; both users become mutual friends.

        Returns:
            The user whose request was accepted.

        Raises:
            InvalidInputError: No pending request from ``sender_id``.
            NotFoundError: The requesting user no longer exists.
        """
        if sender_id not in user.friendRequests:
            raise InvalidInputError("No pending friend request from this user")
        sender = await self.store.find_user_by_id(sender_id)
        if sender is None:
            raise NotFoundError("User not found")

        await self.store.remove_friend_request(user.id, sender.id)
        await self.store.add_friendship(user.id, sender.id)
        logger.info(f"[Friends] {user.username} accepted the friend request of {sender.username}")

        await self.notifications.notify(
            sender.id,
            NotificationType.FRIEND_ACCEPTED,
            sender_id=user.id,
            entity_id=user.id,
            entity_type=EntityType.USER,
        )
        return sender

"""Notification fan-out service.

``create_notification`` is the single entry point for every notification,
whether the triggering action came from a REST handler or from the live
chat layer. The algorithm:

    1. Resolve a default message from the notification type if none given.
    2. Persist the notification (read=False). This is the source of truth.
    3. Attach the sender's display fields for delivery.
    4. Push ``newNotification`` to the recipient's personal channel.

Step 4 is best-effort: a recipient without a live connection simply
misses the push and recovers through ``GET /notifications/me``. A failure
in step 2 raises ``PersistenceError``; callers whose primary action must
still succeed use :meth:`NotificationService.notify`, which logs and
swallows it.
"""
import logging
from typing import List, Optional, Union

from app.errors import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PersistenceError,
)
from app.store import DocumentStore
from app.store.schemas import (
    EntityType,
    NotificationRecord,
    NotificationType,
    NotificationView,
    SenderInfo,
    UserRecord,
)

from .templates import render_default_message
from .transport import NullTransport, Transport

logger = logging.getLogger(__name__)

NEW_NOTIFICATION_EVENT = "newNotification"

DEFAULT_MAX_MESSAGE_LENGTH = 250


class NotificationService:
    """Builds, persists and pushes notifications; serves the recipient-only queries."""

    def __init__(
        self,
        store: DocumentStore,
        transport: Optional[Transport] = None,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self.store = store
        self.transport = transport or NullTransport()
        self.max_message_length = max_message_length

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_notification(
        self,
        recipient_id: str,
        type: Union[NotificationType, str],
        *,
        sender_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        entity_type: Optional[Union[EntityType, str]] = None,
        message: Optional[str] = None,
    ) -> NotificationView:
        """Persist a notification and push it to the recipient if connected.

        Raises:
            InvalidInputError: Unknown type/entity type, entity id without a
                type, or a message longer than the configured limit.
            PersistenceError: The notification could not be stored.
        """
        try:
            notification_type = NotificationType(type)
            resolved_entity_type = EntityType(entity_type) if entity_type else None
        except ValueError as e:
            raise InvalidInputError(str(e))
        if entity_id and resolved_entity_type is None:
            raise InvalidInputError("entityType is required when entityId is set")

        sender = await self.store.find_user_by_id(sender_id) if sender_id else None

        message = (message or "").strip()
        if not message:
            message = render_default_message(
                notification_type, sender.username if sender else None
            )
        if len(message) > self.max_message_length:
            raise InvalidInputError(
                f"Notification message cannot exceed {self.max_message_length} characters"
            )

        record = NotificationRecord(
            recipient=recipient_id,
            sender=sender_id,
            type=notification_type,
            entityId=entity_id,
            entityType=resolved_entity_type,
            message=message,
            read=False,
        )
        saved = await self.store.save_notification(record)
        view = self._enrich(saved, sender)

        try:
            reached = await self.transport.emit(
                recipient_id, NEW_NOTIFICATION_EVENT, view.model_dump(mode="json")
            )
            if reached:
                logger.info(
                    f"[Notify] Pushed {notification_type.value} to {recipient_id} "
                    f"({reached} connection(s))"
                )
        except Exception as e:
            logger.warning(f"[Notify] Live push to {recipient_id} failed: {e}")

        return view

    async def notify(
        self,
        recipient_id: str,
        type: Union[NotificationType, str],
        **kwargs,
    ) -> Optional[NotificationView]:
        """Like :meth:`create_notification` but never raises.

        For side-effect notifications where the primary action (a like, a
        friend request, a chat message) must succeed regardless.
        """
        try:
            return await self.create_notification(recipient_id, type, **kwargs)
        except (PersistenceError, InvalidInputError) as e:
            logger.error(f"[Notify] Failed to create {type} notification for {recipient_id}: {e}")
            return None

    # ------------------------------------------------------------------
    # Recipient-only queries
    # ------------------------------------------------------------------

    async def list_for_recipient(self, recipient_id: str) -> List[NotificationView]:
        """All of a recipient's notifications, newest first, sender-enriched."""
        notifications = await self.store.query_notifications(recipient_id)
        senders = {}
        for sender_id in {n.sender for n in notifications if n.sender}:
            senders[sender_id] = await self.store.find_user_by_id(sender_id)
        return [self._enrich(n, senders.get(n.sender)) for n in notifications]

    async def unread_count(self, recipient_id: str) -> int:
        return await self.store.count_unread_notifications(recipient_id)

    async def _owned(self, notification_id: str, recipient_id: str) -> NotificationRecord:
        notification = await self.store.find_notification(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.recipient != recipient_id:
            raise ForbiddenError("Forbidden: This notification does not belong to you")
        return notification

    async def mark_read(self, notification_id: str, recipient_id: str) -> NotificationRecord:
        await self._owned(notification_id, recipient_id)
        updated = await self.store.mark_notification_read(notification_id)
        if updated is None:
            raise NotFoundError("Notification not found")
        return updated

    async def mark_all_read(self, recipient_id: str) -> int:
        return await self.store.mark_all_notifications_read(recipient_id)

    async def delete(self, notification_id: str, recipient_id: str) -> None:
        await self._owned(notification_id, recipient_id)
        await self.store.delete_notification(notification_id)

    @staticmethod
    def _enrich(notification: NotificationRecord, sender: Optional[UserRecord]) -> NotificationView:
        data = notification.model_dump()
        if sender is not None:
            data["sender"] = SenderInfo.from_user(sender)
        elif notification.sender:
            data["sender"] = SenderInfo(id=notification.sender)
        return NotificationView(**data)

"""Process-wide service accessors.

Each service is built lazily from the config on first use and can be
replaced with ``set_*`` (the lifespan hook and the tests do this).
Replacing the store drops every service built on top of it.
"""
import logging
from typing import Optional

from fastapi import Header

from app.auth.identity import IdentityVerifier
from app.chat.manager import manager
from app.chat.relay import MessageRelay
from app.chat.rooms import RoomRegistry
from app.config import get_config
from app.errors import RealtimeError, to_http_exception
from app.notifications.service import NotificationService
from app.store import DocumentStore, create_store
from app.store.schemas import UserRecord

logger = logging.getLogger(__name__)

_store: Optional[DocumentStore] = None
_verifier: Optional[IdentityVerifier] = None
_notifications: Optional[NotificationService] = None
_rooms: Optional[RoomRegistry] = None
_relay: Optional[MessageRelay] = None


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = create_store(get_config().store)
        logger.info("Document store ready: %s", type(_store).__name__)
    return _store


def set_store(store: Optional[DocumentStore]) -> None:
    """Set (or clear) the store and drop the services built on the old one."""
    global _store, _verifier, _notifications, _rooms, _relay
    _store = store
    _verifier = None
    _notifications = None
    _rooms = None
    _relay = None


def get_identity_verifier() -> IdentityVerifier:
    global _verifier
    if _verifier is None:
        jwt_secrets = get_config().secrets.jwt
        _verifier = IdentityVerifier(get_store(), jwt_secrets.secret_key, jwt_secrets.algorithm)
    return _verifier


def get_notification_service() -> NotificationService:
    global _notifications
    if _notifications is None:
        _notifications = NotificationService(
            get_store(),
            transport=manager,
            max_message_length=get_config().notifications.max_message_length,
        )
    return _notifications


def set_notification_service(service: Optional[NotificationService]) -> None:
    global _notifications, _relay
    _notifications = service
    _relay = None


def get_room_registry() -> RoomRegistry:
    global _rooms
    if _rooms is None:
        _rooms = RoomRegistry(
            get_store(),
            manager,
            history_limit=get_config().chat.history_limit,
        )
    return _rooms


def get_message_relay() -> MessageRelay:
    global _relay
    if _relay is None:
        _relay = MessageRelay(
            get_store(),
            manager,
            get_room_registry(),
            get_notification_service(),
            max_content_length=get_config().chat.max_content_length,
        )
    return _relay


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_auth_token: Optional[str] = Header(None),
) -> UserRecord:
    """FastAPI dependency resolving the bearer credential of a REST call."""
    try:
        return await get_identity_verifier().verify(authorization or x_auth_token)
    except RealtimeError as e:
        raise to_http_exception(e)


__all__ = [
    "get_current_user",
    "get_identity_verifier",
    "get_message_relay",
    "get_notification_service",
    "get_room_registry",
    "get_store",
    "set_notification_service",
    "set_store",
]

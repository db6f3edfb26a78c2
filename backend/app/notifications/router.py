"""Notification router: recipient-only REST access to persisted notifications.

This is the recovery path for notifications whose live push was missed
(the recipient had no open connection when it was created).
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import get_current_user, get_notification_service
from app.errors import RealtimeError, to_http_exception
from app.store.schemas import UserRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/me")
async def list_my_notifications(user: UserRecord = Depends(get_current_user)) -> JSONResponse:
    """List the caller's notifications, newest first, with sender details."""
    try:
        notifications = await get_notification_service().list_for_recipient(user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse([n.model_dump(mode="json") for n in notifications])


@router.get("/me/unread-count")
async def unread_count(user: UserRecord = Depends(get_current_user)) -> JSONResponse:
    try:
        count = await get_notification_service().unread_count(user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse({"unreadCount": count})


@router.put("/me/read-all")
async def mark_all_read(user: UserRecord = Depends(get_current_user)) -> JSONResponse:
    """Mark every unread notification of the caller as read."""
    try:
        updated = await get_notification_service().mark_all_read(user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    logger.info("[notifications] %s marked %d notification(s) read", user.id, updated)
    return JSONResponse({"message": "All notifications marked as read.", "updated": updated})


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    """Mark one notification as read.

    Returns:
        The updated notification, 404 if it does not exist, or 403 if it
        belongs to someone else.
    """
    try:
        notification = await get_notification_service().mark_read(notification_id, user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse(notification.model_dump(mode="json"))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    try:
        await get_notification_service().delete(notification_id, user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    logger.info("[notifications] %s deleted %s", user.id, notification_id)
    return JSONResponse({"message": "Notification removed"})

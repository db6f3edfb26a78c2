"""Friendship router: friend request and accept endpoints."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import get_current_user, get_notification_service, get_store
from app.errors import RealtimeError, to_http_exception
from app.store.schemas import SenderInfo, UserRecord

from .schemas import FriendRequestAccept, FriendRequestCreate
from .service import FriendshipService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users/friends", tags=["friends"])


def _service() -> FriendshipService:
    return FriendshipService(get_store(), get_notification_service())


@router.post("/request")
async def send_friend_request(
    body: FriendRequestCreate,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    """Send a friend request to another user.

    Returns:
        The recipient's display fields. 400 for self-requests, duplicates or
        existing friendships, 404 for an unknown recipient.
    """
    try:
        recipient = await _service().send_request(user, body.recipientId)
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse({
        "message": "Friend request sent.",
        "recipient": SenderInfo.from_user(recipient).model_dump(),
    })


@router.put("/accept")
async def accept_friend_request(
    body: FriendRequestAccept,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    """Accept a pending friend request from ``senderId``."""
    try:
        friend = await _service().accept_request(user, body.senderId)
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse({
        "message": "Friend request accepted.",
        "friend": SenderInfo.from_user(friend).model_dump(),
    })

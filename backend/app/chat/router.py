"""Chat router providing the live WebSocket endpoint.

This module provides:
    - WebSocket /ws: Authenticated real-time chat and notification channel

The WebSocket protocol supports:
    - Bearer authentication during the handshake
    - Group rooms with history replay on join
    - Private (pairwise) rooms with history replay on join
    - Persisted group and private messages
    - Typing indicators
    - Read receipts
    - Live notification push to the user's personal channel

Frame format (both directions)::

    {"type": "<event>", "data": <payload>}

Protocol Message Types (client -> server):
    - joinGroup: groupId (bare value or {"groupId"})
    - joinPrivateChat: otherUserId (bare value or {"otherUserId"})
    - sendGroupMessage: {groupId, content}
    - sendPrivateMessage: {recipientId, content}
    - typing / stopTyping: {groupId} or {recipientId}
    - messageRead: {messageId, chatIdentifier}
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.dependencies import get_identity_verifier, get_message_relay, get_room_registry
from app.errors import InvalidCredentialError, InvalidInputError, RealtimeError, UnauthenticatedError
from app.store.schemas import SenderInfo

from .manager import manager
from .session import ConnectionSession

logger = logging.getLogger(__name__)

router = APIRouter()

# Close code sent when the handshake credential is missing or rejected
AUTH_FAILED_CLOSE_CODE = 4001
# 1011 = Internal Error
INTERNAL_ERROR_CLOSE_CODE = 1011

CHAT_ERROR_EVENT = "chatError"

# Client event -> error event reported back to that client
ERROR_EVENTS = {
    "joinGroup": "groupError",
    "joinPrivateChat": "privateChatError",
    "sendPrivateMessage": "privateChatError",
}


def _scalar_arg(data: Any, key: str) -> Any:
    """Accept ``"abc"`` as well as ``{key: "abc"}`` for single-argument events.

    The value is not type-checked here; the room registry rejects anything
    that is not a non-empty string id.
    """
    if isinstance(data, dict):
        return data.get(key)
    return data


def _object_arg(data: Any) -> dict:
    if not isinstance(data, dict):
        raise InvalidInputError("Invalid message format: data must be an object")
    return data


async def _handle_event(session: ConnectionSession, event: Optional[str], data: Any) -> None:
    """Run one client event. Raises ``RealtimeError`` for anything reportable."""
    rooms = get_room_registry()
    relay = get_message_relay()

    # --- Handle JOIN GROUP ---
    if event == "joinGroup":
        group, history = await rooms.join_group_room(session, _scalar_arg(data, "groupId"))
        await session.send("joinedGroup", {"groupId": group.id, "groupName": group.name})
        await session.send("chatHistory", {
            "groupId": group.id,
            "messages": [m.model_dump(mode="json") for m in history],
        })
        return

    # --- Handle JOIN PRIVATE CHAT ---
    if event == "joinPrivateChat":
        chat_identifier, other_user, history = await rooms.join_private_room(
            session, _scalar_arg(data, "otherUserId")
        )
        await session.send("joinedPrivateChat", {
            "chatIdentifier": chat_identifier,
            "otherUser": SenderInfo.from_user(other_user).model_dump() if other_user else None,
        })
        await session.send("privateChatHistory", {
            "chatIdentifier": chat_identifier,
            "messages": [m.model_dump(mode="json") for m in history],
        })
        return

    # --- Handle GROUP MESSAGE ---
    if event == "sendGroupMessage":
        payload = _object_arg(data)
        await relay.send_group_message(session, payload.get("groupId"), payload.get("content"))
        return

    # --- Handle PRIVATE MESSAGE ---
    if event == "sendPrivateMessage":
        payload = _object_arg(data)
        await relay.send_private_message(
            session, payload.get("recipientId"), payload.get("content")
        )
        return

    # --- Handle TYPING indicators ---
    if event == "typing":
        await relay.typing(session, _object_arg(data))
        return

    if event == "stopTyping":
        await relay.stop_typing(session, _object_arg(data))
        return

    # --- Handle READ receipt ---
    if event == "messageRead":
        payload = _object_arg(data)
        await relay.message_read(session, payload.get("messageId"), payload.get("chatIdentifier"))
        return

    raise InvalidInputError(f"Unknown event: {event}")


async def _report(session: ConnectionSession, event: Optional[str], error: RealtimeError) -> None:
    error_event = ERROR_EVENTS.get(event, CHAT_ERROR_EVENT)
    logger.info(f"[WS] {error_event} for {session.user_id} on {event}: {error.message}")
    await session.send(error_event, {"error": error.message, "code": error.code})


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer credential (JWT)"),
) -> None:
    """WebSocket endpoint for live chat and notifications.

    SECURITY MODEL:
        - The credential is verified BEFORE the socket is accepted
        - Identity comes only from the verified credential, never from frames
        - Room access is checked on join and again on every send

    Protocol Flow:
        1. Client connects with ?token=<jwt> (or an Authorization header)
           → Invalid/missing credential: handshake closed with code 4001
           → Server sends: {type: "connected", data: {userId, username, role}}
        2. Client sends: {type: "joinGroup", data: groupId}
           → Server sends: joinedGroup, then chatHistory (oldest first)
        3. Client sends: {type: "sendGroupMessage", data: {groupId, content}}
           → Server broadcasts: groupMessage to the group room
        4. Client sends: {type: "joinPrivateChat", data: otherUserId}
           → Server sends: joinedPrivateChat, then privateChatHistory
        5. Client sends: {type: "sendPrivateMessage", data: {recipientId, content}}
           → Server broadcasts: privateMessage; absent recipient gets newNotification
        6. Failed operations → groupError / privateChatError / chatError,
           connection stays open
        7. On disconnect → every room subscription is dropped

    Args:
        websocket: The WebSocket connection.
        token: Bearer credential from the query string.
    """
    session = ConnectionSession(websocket)
    credential = token or websocket.headers.get("authorization")

    try:
        user = await get_identity_verifier().verify(credential)
    except (UnauthenticatedError, InvalidCredentialError) as e:
        logger.warning(f"[WS] Rejected connection {session.id}: {e.message}")
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return
    except RealtimeError as e:
        logger.error(f"[WS] Could not verify connection {session.id}: {e.message}")
        await websocket.close(code=INTERNAL_ERROR_CLOSE_CODE)
        return

    session.authenticate(user)
    await websocket.accept()
    manager.register(session)
    session.activate()
    logger.info(f"[WS] User connected: {user.username} ({user.id}), connection={session.id}")

    try:
        await session.send("connected", {
            "userId": user.id,
            "username": user.username,
            "role": user.role.value,
        })

        # Main message loop
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await _report(session, None, InvalidInputError("Invalid message format: not JSON"))
                continue
            if not isinstance(frame, dict):
                await _report(session, None, InvalidInputError("Invalid message format"))
                continue

            event = frame.get("type")
            if not isinstance(event, str):
                await _report(
                    session, None, InvalidInputError("Invalid message format: type must be a string")
                )
                continue
            logger.debug("[WS] Connection %s received: type=%s", session.id, event or "?")
            try:
                await _handle_event(session, event, frame.get("data"))
            except RealtimeError as e:
                await _report(session, event, e)

    except WebSocketDisconnect:
        logger.info(f"[WS] User disconnected: {user.username} ({user.id}), connection={session.id}")
    except Exception as e:
        logger.exception(f"[WS] Connection {session.id} failed: {e}")
        try:
            await websocket.close(code=INTERNAL_ERROR_CLOSE_CODE)
        except RuntimeError as close_error:
            logger.debug(f"[WS] Close after failure not sent: {close_error}")
    finally:
        manager.disconnect(session)

"""Conversation router: REST view over private-message history.

This module provides:
    - GET /conversations/me: One entry per private conversation, most recent first
    - GET /conversations/{chat_identifier}/messages: Conversation history, oldest first
    - PUT /conversations/{chat_identifier}/read: Mark messages addressed to the caller as read
"""
import logging
from typing import Tuple

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.config import get_config
from app.dependencies import get_current_user, get_room_registry, get_store
from app.errors import ForbiddenError, RealtimeError, to_http_exception
from app.store import DESCENDING
from app.store.schemas import SenderInfo, UserRecord

from .rooms import chat_participants

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _require_participant(chat_identifier: str, user: UserRecord) -> Tuple[str, ...]:
    participants = chat_participants(chat_identifier)
    if user.id not in participants:
        raise ForbiddenError("You are not a participant in this conversation")
    return participants


@router.get("/me")
async def list_my_conversations(user: UserRecord = Depends(get_current_user)) -> JSONResponse:
    """List the caller's private conversations.

    Each entry carries the chat identifier, the other participant's display
    fields and the last message. Sorted by last message, newest first.
    """
    store = get_store()
    rooms = get_room_registry()
    try:
        conversations = []
        for chat_identifier in await store.list_chat_identifiers(user.id):
            latest = await store.query_messages({"chatIdentifier": chat_identifier}, 1, DESCENDING)
            if not latest:
                continue
            other_id = next(
                (p for p in chat_participants(chat_identifier) if p != user.id), user.id
            )
            other_user = await store.find_user_by_id(other_id)
            last_message = (await rooms.with_senders(latest))[0]
            conversations.append({
                "chatIdentifier": chat_identifier,
                "otherUser": (
                    SenderInfo.from_user(other_user) if other_user else SenderInfo(id=other_id)
                ).model_dump(),
                "lastMessage": last_message,
            })
    except RealtimeError as e:
        raise to_http_exception(e)

    conversations.sort(key=lambda c: c["lastMessage"].createdAt, reverse=True)
    for conversation in conversations:
        conversation["lastMessage"] = conversation["lastMessage"].model_dump(mode="json")
    return JSONResponse(conversations)


@router.get("/{chat_identifier}/messages")
async def get_conversation_messages(
    chat_identifier: str,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    """Return up to ``chat.conversation_history_limit`` messages, oldest first."""
    try:
        _require_participant(chat_identifier, user)
        messages = await get_room_registry().recent_history(
            {"chatIdentifier": chat_identifier},
            limit=get_config().chat.conversation_history_limit,
        )
    except RealtimeError as e:
        raise to_http_exception(e)
    return JSONResponse([m.model_dump(mode="json") for m in messages])


@router.put("/{chat_identifier}/read")
async def mark_conversation_read(
    chat_identifier: str,
    user: UserRecord = Depends(get_current_user),
) -> JSONResponse:
    try:
        _require_participant(chat_identifier, user)
        updated = await get_store().mark_conversation_read(chat_identifier, user.id)
    except RealtimeError as e:
        raise to_http_exception(e)
    logger.info("[conversations] %s read %d message(s) in %s", user.id, updated, chat_identifier)
    return JSONResponse({"message": "Messages marked as read.", "updated": updated})

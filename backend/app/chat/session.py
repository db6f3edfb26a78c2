"""Per-connection session state.

State machine::

    CONNECTING ──verify ok──▶ AUTHENTICATED ──accepted──▶ ACTIVE ──▶ CLOSED
        │                                                           ▲
        └──────────────── verify failed (no session admitted) ──────┘

A session is created for every inbound socket, but it only reaches
AUTHENTICATED through a successful identity verification. Room operations
are accepted only while ACTIVE. CLOSED is terminal.
"""
import asyncio
import uuid
from enum import Enum
from typing import Any, Optional, Set

from fastapi import WebSocket

from app.errors import ForbiddenError
from app.store.schemas import UserRecord


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


class ConnectionSession:
    """One live connection: its socket, resolved user and joined rooms.

    Attributes:
        id: Server-generated connection id (distinct per device).
        websocket: The underlying WebSocket.
        user: The verified user; ``None`` until authenticated.
        rooms: Room ids this connection is subscribed to, including its
            personal channel. Maintained by ``ConnectionManager``.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.state = SessionState.CONNECTING
        self.user: Optional[UserRecord] = None
        self.rooms: Set[str] = set()
        # Serializes outbound frames; several tasks may broadcast to one socket
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"ConnectionSession(id={self.id!r}, user={self.user_id!r}, state={self.state.value})"

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    @property
    def personal_channel(self) -> str:
        """Room named after the user id, used for direct delivery."""
        if self.user is None:
            raise ForbiddenError("Connection is not authenticated")
        return self.user.id

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def authenticate(self, user: UserRecord) -> None:
        if self.state != SessionState.CONNECTING:
            raise RuntimeError(f"Cannot authenticate a session in state {self.state.value}")
        self.user = user
        self.state = SessionState.AUTHENTICATED

    def activate(self) -> None:
        if self.state != SessionState.AUTHENTICATED:
            raise RuntimeError(f"Cannot activate a session in state {self.state.value}")
        self.state = SessionState.ACTIVE

    def close(self) -> None:
        self.state = SessionState.CLOSED

    def require_active(self) -> UserRecord:
        """Return the session's user, or raise if it cannot run room operations."""
        if self.state != SessionState.ACTIVE or self.user is None:
            raise ForbiddenError("Connection is not active")
        return self.user

    async def send(self, event: str, data: Any) -> None:
        """Send one ``{"type", "data"}`` frame; raises if the socket is gone."""
        async with self._send_lock:
            await self.websocket.send_json({"type": event, "data": data})

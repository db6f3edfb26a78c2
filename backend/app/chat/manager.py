"""Room membership index and broadcast fan-out for live connections.

This module tracks which connections are subscribed to which rooms and
delivers events to them. A room is either a group chat room (keyed by
group id), a pairwise private-chat room (keyed by the derived chat
identifier) or a personal channel (keyed by user id).

Key features:
    - Room id -> set of connection sessions, plus the reverse index on
      each session
    - Personal channel subscription when a session is registered
    - Concurrent message broadcasting with asyncio.gather()
    - Automatic dead connection cleanup (at-most-once delivery)
    - Multiple concurrent connections per user

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    Subscribe and unsubscribe never await, so each mutation is atomic with
    respect to other connection tasks. It is NOT thread-safe for concurrent
    access from multiple threads.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent message delivery
    - Failed connections are automatically removed during broadcast
    - Uvicorn handles ping/pong at the protocol level (default 20s interval)
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from app.notifications.transport import Transport

from .session import ConnectionSession

logger = logging.getLogger(__name__)


class ConnectionManager(Transport):
    """Manages live connection sessions and their room subscriptions.

    This class maintains:
    - Active sessions, regardless of which rooms they joined
    - Room id -> subscribed sessions

    Note:
        This is a singleton-style global instance. All WebSocket handlers
        and the notification service share the same ConnectionManager to
        maintain consistent state.
    """

    def __init__(self) -> None:
        """Initialize empty connection manager."""
        # every registered (authenticated) session
        self.sessions: Set[ConnectionSession] = set()

        # room_id -> sessions subscribed to it
        self.rooms: Dict[str, Set[ConnectionSession]] = {}

    # =========================================================================
    # Membership
    # =========================================================================

    def register(self, session: ConnectionSession) -> None:
        """Track an authenticated session and subscribe it to its personal channel."""
        self.sessions.add(session)
        self.subscribe(session, session.personal_channel)
        logger.info(
            f"[Manager] Registered connection {session.id} for user {session.user_id} "
            f"({len(self.get_user_sessions(session.user_id))} connection(s) for this user)"
        )

    def subscribe(self, session: ConnectionSession, room_id: str) -> None:
        """Add a session to a room. Subscribing twice is a no-op."""
        self.rooms.setdefault(room_id, set()).add(session)
        session.rooms.add(room_id)

    def unsubscribe(self, session: ConnectionSession, room_id: str) -> None:
        members = self.rooms.get(room_id)
        if members is not None:
            members.discard(session)
            if not members:
                del self.rooms[room_id]
        session.rooms.discard(room_id)

    def disconnect(self, session: ConnectionSession) -> List[str]:
        """Drop a session from every room it joined.

        Safe to call more than once and for sessions that never registered.

        Returns:
            The room ids the session was removed from.
        """
        left = list(session.rooms)
        for room_id in left:
            self.unsubscribe(session, room_id)
        self.sessions.discard(session)
        session.close()
        if left:
            logger.info(f"[Manager] Connection {session.id} left {len(left)} room(s)")
        return left

    def is_subscribed(self, session: ConnectionSession, room_id: str) -> bool:
        return session in self.rooms.get(room_id, ())

    def is_user_in_room(self, user_id: str, room_id: str) -> bool:
        """True if any connection of ``user_id`` is subscribed to the room."""
        return any(s.user_id == user_id for s in self.rooms.get(room_id, ()))

    def get_user_sessions(self, user_id: Optional[str]) -> List[ConnectionSession]:
        return [s for s in self.sessions if s.user_id == user_id]

    def get_room_size(self, room_id: str) -> int:
        """Get the number of connections subscribed to a room."""
        return len(self.rooms.get(room_id, ()))

    def clear(self) -> None:
        """Forget every session and room (used by tests and on shutdown)."""
        for session in list(self.sessions):
            session.close()
        self.sessions.clear()
        self.rooms.clear()

    # =========================================================================
    # Delivery
    # =========================================================================

    async def broadcast(self, room_id: str, event: str, data: Any) -> int:
        """Send an event to every connection in a room concurrently.

        Connections whose send fails are removed from all rooms.

        Returns:
            Number of connections the event was delivered to.
        """
        return await self._deliver(list(self.rooms.get(room_id, ())), event, data)

    async def broadcast_except(
        self,
        room_id: str,
        event: str,
        data: Any,
        exclude: ConnectionSession,
    ) -> int:
        """Broadcast to a room, skipping one connection.

        Useful for typing indicators where sender shouldn't see their own.
        """
        targets = [s for s in self.rooms.get(room_id, ()) if s is not exclude]
        return await self._deliver(targets, event, data)

    async def emit(self, room_id: str, event: str, data: Any) -> int:
        """Transport entry point used by the notification service."""
        return await self.broadcast(room_id, event, data)

    async def _deliver(self, targets: List[ConnectionSession], event: str, data: Any) -> int:
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(session, event, data) for session in targets],
            return_exceptions=True,
        )

        failed = [s for s, ok in zip(targets, results) if ok is not True]
        self._cleanup_connections(failed)
        return len(targets) - len(failed)

    async def _safe_send(self, session: ConnectionSession, event: str, data: Any) -> bool:
        """Send to one connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await session.send(event, data)
            return True
        except Exception as e:
            logger.debug(f"Failed to send {event} to connection {session.id}: {e}")
            return False

    def _cleanup_connections(self, failed: Iterable[ConnectionSession]) -> None:
        """Remove connections whose send failed from every room."""
        for session in failed:
            self.disconnect(session)
            logger.debug(f"Removed dead connection {session.id}")


# Global singleton instance used by all WebSocket handlers
manager = ConnectionManager()

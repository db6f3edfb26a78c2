"""Live delivery transports for the notification fan-out service.

The notification service receives its transport at construction time.
In the running server it is the shared ``ConnectionManager``; REST-only
contexts and tests use ``NullTransport``.
"""
from abc import ABC, abstractmethod
from typing import Any


class Transport(ABC):
    """Something that can push a named event to every connection in a room."""

    @abstractmethod
    async def emit(self, room_id: str, event: str, data: Any) -> int:
        """Push ``event`` to the room; return the number of connections reached."""


class NullTransport(Transport):
    """Drops every event. Used where no live layer is attached."""

    async def emit(self, room_id: str, event: str, data: Any) -> int:
        return 0

"""
Broadcast Hub

Room-scoped, best-effort push of state changes to live subscribers.

Delivery is at-most-once: an event reaches the connections that are members
of the room at the moment it is published. Nothing is queued or replayed for
late joiners or for connections that drop mid-send.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from .models import BroadcastEvent, RoomId

logger = logging.getLogger(__name__)


@runtime_checkable
class SubscriberConnection(Protocol):
    """A live connection able to receive a JSON frame (e.g. a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...


@dataclass
class HubStats:
    """Delivery counters."""

    published: int = 0
    delivered: int = 0
    failed_sends: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "published": self.published,
            "delivered": self.delivered,
            "failed_sends": self.failed_sends,
        }


class BroadcastHub:
    """
    Registry of live connections and their room memberships.

    Membership is kept in both directions (room -> subscribers and
    subscriber -> rooms) so disconnect() can clean up without scanning
    every room.
    """

    def __init__(self, send_timeout: float = 5.0):
        """
        Args:
            send_timeout: Seconds allowed for a single send to one subscriber
        """
        self._send_timeout = send_timeout
        self._connections: dict[str, SubscriberConnection] = {}
        self._rooms: dict[RoomId, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[RoomId]] = defaultdict(set)
        self._stats = HubStats()

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self._stats.to_dict(),
            "active_connections": self.active_connections,
            "rooms": {str(room): len(members) for room, members in self._rooms.items()},
        }

    def is_connected(self, subscriber_id: str) -> bool:
        return subscriber_id in self._connections

    def members(self, room: RoomId) -> frozenset[str]:
        return frozenset(self._rooms.get(room, ()))

    def rooms_of(self, subscriber_id: str) -> frozenset[RoomId]:
        return frozenset(self._memberships.get(subscriber_id, ()))

    def connect(self, subscriber_id: str, connection: SubscriberConnection) -> None:
        """Register a live connection."""
        self._connections[subscriber_id] = connection
        logger.info(f"Client connected: {subscriber_id}")

    def disconnect(self, subscriber_id: str) -> None:
        """Remove a connection and every room membership it held."""
        self._connections.pop(subscriber_id, None)
        for room in self._memberships.pop(subscriber_id, set()):
            members = self._rooms.get(room)
            if members is not None:
                members.discard(subscriber_id)
                if not members:
                    del self._rooms[room]
        logger.info(f"Client disconnected: {subscriber_id}")

    def join(self, subscriber_id: str, room: RoomId) -> None:
        """Add the subscriber to a room. Joining twice is a no-op."""
        if subscriber_id not in self._connections:
            raise KeyError(f"Unknown subscriber: {subscriber_id}")
        self._rooms[room].add(subscriber_id)
        self._memberships[subscriber_id].add(room)
        logger.info(f"Client {subscriber_id} joined room {room}")

    def leave(self, subscriber_id: str, room: RoomId) -> None:
        """Remove the subscriber from a room. Leaving a room not joined is a no-op."""
        members = self._rooms.get(room)
        if members is not None:
            members.discard(subscriber_id)
            if not members:
                del self._rooms[room]
        rooms = self._memberships.get(subscriber_id)
        if rooms is not None:
            rooms.discard(room)
        logger.info(f"Client {subscriber_id} left room {room}")

    async def publish(self, room: RoomId, event_type: str, payload: dict[str, Any]) -> int:
        """
        Send an event to the current members of a room.

        Returns:
            Number of subscribers the frame was delivered to
        """
        event = BroadcastEvent(room=room, event_type=event_type, payload=payload)
        return await self._deliver(event, list(self._rooms.get(room, ())))

    async def broadcast(self, event_type: str, payload: dict[str, Any]) -> int:
        """Send an unscoped event to every live connection."""
        event = BroadcastEvent(room=None, event_type=event_type, payload=payload)
        return await self._deliver(event, list(self._connections))

    async def send_to(self, subscriber_id: str, event_type: str, payload: dict[str, Any]) -> bool:
        """Send an unscoped event to a single subscriber."""
        event = BroadcastEvent(room=None, event_type=event_type, payload=payload)
        return await self._deliver(event, [subscriber_id]) == 1

    async def heartbeat(self) -> int:
        """Broadcast system_heartbeat to every connection, regardless of rooms."""
        return await self.broadcast(
            "system_heartbeat",
            {
                "timestamp": datetime.now(UTC).isoformat(),
                "active_connections": self.active_connections,
            },
        )

    async def _deliver(self, event: BroadcastEvent, subscriber_ids: list[str]) -> int:
        self._stats.published += 1
        frame = event.to_frame()
        targets = [
            (sid, self._connections[sid]) for sid in subscriber_ids if sid in self._connections
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._send(sid, conn, frame) for sid, conn in targets)
        )
        delivered = sum(1 for ok in results if ok)
        self._stats.delivered += delivered
        return delivered

    async def _send(
        self, subscriber_id: str, connection: SubscriberConnection, frame: dict[str, Any]
    ) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(frame), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            self._stats.failed_sends += 1
            logger.warning(f"Send of {frame['event']} to {subscriber_id} timed out")
        except Exception as e:
            self._stats.failed_sends += 1
            logger.warning(f"Send of {frame['event']} to {subscriber_id} failed: {e}")
        return False

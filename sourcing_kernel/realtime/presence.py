"""
In-memory presence: which actors currently hold at least one live
connection.  Not persisted; rebuilt from connect events after a restart.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class PresenceChange:
    actor_id: UUID
    online: bool


class PresenceRegistry:
    """Thread-safe actor -> connection ids mapping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_actor: dict[UUID, set[str]] = {}
        self._by_connection: dict[str, UUID] = {}
        self._channels: dict[str, set[str]] = {}

    def track_channel(self, connection_id: str, channel: str) -> None:
        with self._lock:
            self._channels.setdefault(connection_id, set()).add(channel)

    def untrack_channel(self, connection_id: str, channel: str) -> None:
        with self._lock:
            self._channels.get(connection_id, set()).discard(channel)

    def channels_of(self, connection_id: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._channels.get(connection_id, ()))

    def connect(self, actor_id: UUID, connection_id: str) -> PresenceChange | None:
        """Register a connection; returns a change only when the actor comes online."""
        with self._lock:
            previous = self._by_connection.get(connection_id)
            if previous is not None and previous != actor_id:
                raise ValueError(
                    f"Connection {connection_id} already belongs to actor {previous}"
                )
            connections = self._by_actor.setdefault(actor_id, set())
            came_online = not connections
            connections.add(connection_id)
            self._by_connection[connection_id] = actor_id
        return PresenceChange(actor_id, True) if came_online else None

    def disconnect(self, connection_id: str) -> PresenceChange | None:
        """Drop a connection; returns a change only when the actor goes offline."""
        with self._lock:
            self._channels.pop(connection_id, None)
            actor_id = self._by_connection.pop(connection_id, None)
            if actor_id is None:
                return None
            connections = self._by_actor.get(actor_id, set())
            connections.discard(connection_id)
            if connections:
                return None
            self._by_actor.pop(actor_id, None)
        return PresenceChange(actor_id, False)

    def is_online(self, actor_id: UUID) -> bool:
        with self._lock:
            return bool(self._by_actor.get(actor_id))

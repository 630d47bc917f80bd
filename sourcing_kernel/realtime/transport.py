"""
Real-time transport interface.

The kernel publishes events to named channels (``user_<id>``,
``order_<id>``, ``vendors``) through a ``RealtimeTransport``.  Connection
management belongs to the transport; the kernel only asks it to join or
leave channels on behalf of a connection and to publish.

``InMemoryTransport`` is a complete, thread-safe implementation used by
single-process deployments and by the test-suite.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RealtimeTransport(Protocol):
    """Publish/subscribe surface the kernel depends on."""

    def join(self, connection_id: str, channel: str) -> None:
        ...

    def leave(self, connection_id: str, channel: str) -> None:
        ...

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> int:
        """Deliver to current subscribers; returns how many received it."""
        ...


@dataclass(frozen=True)
class PublishedEvent:
    channel: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    recipients: int = 0


class InMemoryTransport:
    """Channel fan-out held in process memory.

    Published history and each connection's inbox are bounded; a connection
    that has left every channel loses its inbox.
    """

    def __init__(self, history_limit: int = 10_000, inbox_limit: int = 1_000) -> None:
        if history_limit < 1 or inbox_limit < 1:
            raise ValueError("history_limit and inbox_limit must be positive")
        self._lock = threading.RLock()
        self._members: dict[str, set[str]] = defaultdict(set)
        self._channels_of: dict[str, set[str]] = defaultdict(set)
        self._inbox_limit = inbox_limit
        self._inboxes: dict[str, deque[PublishedEvent]] = {}
        self._published: deque[PublishedEvent] = deque(maxlen=history_limit)

    def join(self, connection_id: str, channel: str) -> None:
        with self._lock:
            self._members[channel].add(connection_id)
            self._channels_of[connection_id].add(channel)
            if connection_id not in self._inboxes:
                self._inboxes[connection_id] = deque(maxlen=self._inbox_limit)

    def leave(self, connection_id: str, channel: str) -> None:
        with self._lock:
            members = self._members.get(channel)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._members[channel]
            channels = self._channels_of.get(connection_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self._channels_of[connection_id]
                    self._inboxes.pop(connection_id, None)

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> int:
        with self._lock:
            members = sorted(self._members.get(channel, ()))
            record = PublishedEvent(channel, event, dict(payload), len(members))
            self._published.append(record)
            for connection_id in members:
                self._inboxes[connection_id].append(record)
            return len(members)

    # -- inspection ---------------------------------------------------------

    def members(self, channel: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._members.get(channel, ()))

    def inbox(self, connection_id: str) -> list[PublishedEvent]:
        with self._lock:
            return list(self._inboxes.get(connection_id, ()))

    def published(
        self,
        channel: str | None = None,
        event: str | None = None,
    ) -> list[PublishedEvent]:
        with self._lock:
            return [
                p
                for p in self._published
                if (channel is None or p.channel == channel)
                and (event is None or p.event == event)
            ]

"""Real-time delivery: transport interface and presence tracking."""

from sourcing_kernel.realtime.presence import PresenceChange, PresenceRegistry
from sourcing_kernel.realtime.transport import (
    InMemoryTransport,
    PublishedEvent,
    RealtimeTransport,
)

__all__ = [
    "InMemoryTransport",
    "PresenceChange",
    "PresenceRegistry",
    "PublishedEvent",
    "RealtimeTransport",
]

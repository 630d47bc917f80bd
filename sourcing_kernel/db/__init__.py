"""Database layer - engine, base classes and column types."""

from sourcing_kernel.db.base import UUID, Base, TrackedBase, TZDateTime, UUIDString
from sourcing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from sourcing_kernel.db.types import Money, Quantity, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "TZDateTime",
    "UUID",
    "Money",
    "Quantity",
    "ShortCode",
]

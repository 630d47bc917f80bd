"""
Module: sourcing_kernel.models.notification
Responsibility: ORM persistence for user notifications and the order-scoped
    chat log.
Architecture position: Kernel > Models.  May import from db/ only.

Notifications are the durable record of every real-time push: a row is
written whether or not the recipient is connected.  Only ``is_read`` /
``read_at`` change after insert; rows may be deleted by their owner.
Chat messages are append-only.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import Base, UUIDString


class Notification(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read", "created_at"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    __table_args__ = (
        Index("ix_chat_messages_order_created", "order_id", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False,
    )
    sender_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    created_at: Mapped[datetime] = mapped_column(nullable=False)

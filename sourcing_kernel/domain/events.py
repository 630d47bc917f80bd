"""
Real-time event names and channel naming.

Event names are part of the external contract with clients and must not
change.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID


class EventName(str, Enum):
    ORDER_RECEIVED = "order_received"
    ORDER_APPROVED = "order_approved"
    ORDER_REJECTED = "order_rejected"
    ORDER_STATUS_UPDATE = "order_status_update"
    ORDER_CANCELLED = "order_cancelled"
    CONTRACT_SENT = "contract_sent"
    CONTRACT_COMPLETED = "contract_completed"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    PAYMENT_REMINDER = "payment_reminder"
    STOCK_ALERT = "stock_alert"
    NEW_SUPPLIER = "new_supplier"
    RECEIVE_MESSAGE = "receive_message"
    USER_TYPING = "user_typing"
    USER_STATUS_CHANGE = "user_status_change"


VENDORS_CHANNEL = "vendors"
PRESENCE_CHANNEL = "presence"


def user_channel(actor_id: UUID | str) -> str:
    return f"user_{actor_id}"


def order_channel(order_id: UUID | str) -> str:
    return f"order_{order_id}"

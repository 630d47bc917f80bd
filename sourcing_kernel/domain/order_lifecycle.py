"""
Order, contract and payment lifecycle types.

Responsibility
--------------
Status enums and the transition graphs that services check before
persisting any status change.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, ZERO I/O.

Order graph::

    pending -> accepted | rejected | cancelled
    accepted -> in_progress | cancelled
    in_progress -> out_for_delivery | cancelled
    out_for_delivery -> delivered | cancelled
    delivered, rejected, cancelled: terminal

``pending -> accepted`` and ``pending -> rejected`` are decisions reserved
to the supplier (approve/reject); ``advance`` only walks the fulfilment
chain.
"""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.ACCEPTED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ACCEPTED: frozenset({
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.IN_PROGRESS: frozenset({
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.REJECTED,
    OrderStatus.CANCELLED,
})

# Edges reachable through advance(); supplier decisions are excluded.
FULFILMENT_CHAIN: dict[OrderStatus, OrderStatus] = {
    OrderStatus.ACCEPTED: OrderStatus.IN_PROGRESS,
    OrderStatus.IN_PROGRESS: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

# Statuses whose reserved stock is still held by the order.
STOCK_HOLDING_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.OUT_FOR_DELIVERY,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def is_forward_step(current: OrderStatus, target: OrderStatus) -> bool:
    return FULFILMENT_CHAIN.get(current) == target


class OrderPaymentStatus(str, Enum):
    """Payment state as tracked on the order row."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    NET_BANKING = "net_banking"
    WALLET = "wallet"
    PAY_LATER = "pay_later"


class PaymentStatus(str, Enum):
    """Status of an individual Payment record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    }),
    PaymentStatus.FAILED: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
    }),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


class ContractStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


OPEN_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.DRAFT,
    ContractStatus.SENT,
})

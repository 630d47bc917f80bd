"""
Data transfer objects returned by kernel services.

Services never hand ORM instances to callers; every read or write returns
one of these frozen snapshots, built by the service's ``_to_dto`` helper.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sourcing_kernel.domain.order_lifecycle import (
    ContractStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderItemRequest:
    """One line of an order as submitted by the vendor."""

    product_id: UUID
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class DeliveryDetails:
    address: str
    city: str | None = None
    pincode: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderItemInfo:
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    order_number: str
    vendor_id: UUID
    supplier_id: UUID
    status: OrderStatus
    payment_status: OrderPaymentStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    items: tuple[OrderItemInfo, ...]
    delivery_address: str
    payment_terms_days: int
    payment_due_at: datetime
    created_at: datetime
    contract_id: UUID | None = None
    estimated_delivery_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    rejection_reason: str | None = None
    supplier_notes: str | None = None


@dataclass(frozen=True)
class OrderCreated:
    """Result of OrderWorkflow.create_order."""

    order: OrderInfo
    contract: "ContractInfo"
    payment: "PaymentInfo | None" = None


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractInfo:
    id: UUID
    contract_number: str
    order_id: UUID
    vendor_id: UUID
    supplier_id: UUID
    status: ContractStatus
    terms_text: str
    payment_terms_days: int
    total_amount: Decimal
    vendor_signed: bool
    supplier_signed: bool
    vendor_signed_at: datetime | None = None
    supplier_signed_at: datetime | None = None
    signed_at: datetime | None = None

    @property
    def is_fully_signed(self) -> bool:
        return self.vendor_signed and self.supplier_signed


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    order_id: UUID
    vendor_id: UUID
    supplier_id: UUID
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None = None
    failure_reason: str | None = None
    due_at: datetime | None = None
    paid_at: datetime | None = None
    refunded_amount: Decimal | None = None
    refunded_at: datetime | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a payment attempt; gateway failures are data, not raises."""

    success: bool
    payment: PaymentInfo
    error_code: str | None = None
    message: str | None = None
    retryable: bool = False


@dataclass(frozen=True)
class GatewayCharge:
    """Successful gateway response."""

    transaction_id: str
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Notifications and chat
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotificationInfo:
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    data: dict[str, Any]
    is_read: bool
    created_at: datetime
    read_at: datetime | None = None

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ChatMessageInfo:
    id: UUID
    order_id: UUID
    sender_id: UUID
    content: str
    message_type: str
    created_at: datetime

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "sender_id": str(self.sender_id),
            "content": self.content,
            "message_type": self.message_type,
            "created_at": self.created_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Inventory and reputation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductStock:
    product_id: UUID
    supplier_id: UUID
    name: str
    category: str
    stock_quantity: int
    min_order_quantity: int


@dataclass(frozen=True)
class SupplierRatingInfo:
    id: UUID
    order_id: UUID
    vendor_id: UUID
    supplier_id: UUID
    rating: int
    review: str | None
    created_at: datetime


@dataclass(frozen=True)
class TrustScoreSnapshotInfo:
    actor_id: UUID
    score: int
    factors: dict[str, Any]
    reason: str
    created_at: datetime

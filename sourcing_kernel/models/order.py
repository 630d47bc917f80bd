"""
Module: sourcing_kernel.models.order
Responsibility: ORM persistence for orders and their line items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - total_amount equals the sum of its items' total_price.  Both are
      computed once, in Decimal, by OrderWorkflow.create_order and never
      recomputed.
    - status and payment_status are limited to their lifecycle values
      (CHECK constraints); transition legality is enforced by the services.
    - order_number is unique.

Failure modes:
    - IntegrityError on duplicate order_number.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sourcing_kernel.db.base import Base, TrackedBase, UUIDString
from sourcing_kernel.db.types import Money


class Order(TrackedBase):
    """A vendor's purchase order placed with a single supplier."""

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'in_progress', "
            "'out_for_delivery', 'delivered', 'cancelled')",
            name="ck_orders_valid_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_orders_valid_payment_status",
        ),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_vendor_status", "vendor_id", "status"),
        Index("ix_orders_supplier_status", "supplier_id", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_terms_days: Mapped[int] = mapped_column(nullable=False)
    payment_due_at: Mapped[datetime] = mapped_column(nullable=False)

    total_amount: Mapped[Money] = mapped_column(nullable=False)

    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_pincode: Mapped[str | None] = mapped_column(String(12), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    supplier_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Contract.order_id is the owning FK; this is a back-reference copy.
    contract_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    estimated_delivery_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} {self.status}>"


class OrderItem(Base):
    """One product line of an order, priced at order time."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_price_non_negative"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    total_price: Mapped[Money] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


__all__ = ["Order", "OrderItem"]

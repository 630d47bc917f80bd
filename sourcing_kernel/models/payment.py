"""
Module: sourcing_kernel.models.payment
Responsibility: ORM persistence for payment attempts against orders.
Architecture position: Kernel > Models.  May import from db/ only.

An order may have many payments: a failed gateway attempt is kept as its
own row and a retry creates a new one.  Refunds update the completed row
in place (status, refunded_amount, refunded_at).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import TrackedBase, UUIDString
from sourcing_kernel.db.types import Money


class Payment(TrackedBase):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'refunded')",
            name="ck_payments_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "refunded_amount IS NULL OR (refunded_amount > 0 AND refunded_amount <= amount)",
            name="ck_payments_refund_within_amount",
        ),
        Index("ix_payments_order", "order_id", "created_at"),
        Index("ix_payments_status_due", "status", "due_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False,
    )
    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    amount: Mapped[Money] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    refunded_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.status} {self.amount}>"

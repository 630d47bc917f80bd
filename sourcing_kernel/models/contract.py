"""
Module: sourcing_kernel.models.contract
Responsibility: ORM persistence for per-order supply agreements and their
    bilateral signatures.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One contract per order (UNIQUE order_id).
    - contract_number is unique.
    - status = 'signed' implies both signature flags are true (CHECK).
      ContractService only flips the status with a conditional UPDATE that
      requires both flags, so the CHECK is a backstop.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import TrackedBase, UUIDString
from sourcing_kernel.db.types import Money


class Contract(TrackedBase):
    __tablename__ = "contracts"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'sent', 'signed', 'expired', 'cancelled')",
            name="ck_contracts_valid_status",
        ),
        CheckConstraint(
            "status <> 'signed' OR (vendor_signed AND supplier_signed)",
            name="ck_contracts_signed_requires_both",
        ),
        Index("ix_contracts_status_created", "status", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False, unique=True,
    )
    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    contract_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    terms_text: Mapped[str] = mapped_column(Text, nullable=False)
    payment_terms_days: Mapped[int] = mapped_column(nullable=False)
    total_amount: Mapped[Money] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    vendor_signed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vendor_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    supplier_signed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supplier_signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Contract {self.contract_number} {self.status}>"

"""
Module: sourcing_kernel.models.reputation
Responsibility: ORM persistence for vendor-to-supplier ratings and the
    trust-score history written on every refresh.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one rating per order (UNIQUE order_id), value 1..5.
    - Trust snapshots are append-only.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import Base, UUIDString


class SupplierRating(Base):
    __tablename__ = "supplier_ratings"

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_supplier_ratings_range"),
        Index("ix_supplier_ratings_supplier", "supplier_id"),
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
    rating: Mapped[int] = mapped_column(nullable=False)
    review: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class TrustScoreSnapshot(Base):
    __tablename__ = "trust_score_snapshots"

    __table_args__ = (
        Index("ix_trust_score_snapshots_actor", "actor_id", "created_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    score: Mapped[int] = mapped_column(nullable=False)
    factors: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

"""
Module: sourcing_kernel.models.product
Responsibility: ORM persistence for supplier catalog items and their stock.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - stock_quantity never goes negative (CHECK constraint, backed by the
      conditional UPDATE used for reservations in InventoryService).
    - min_order_quantity is at least 1.

The catalog itself is maintained outside the kernel; the kernel only moves
``stock_quantity`` (reserve, restore, restock).
"""

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import TrackedBase, UUIDString
from sourcing_kernel.db.types import Money


class Product(TrackedBase):
    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("min_order_quantity >= 1", name="ck_products_min_order_positive"),
        CheckConstraint("price_per_unit >= 0", name="ck_products_price_non_negative"),
        Index("ix_products_category_supplier", "category", "supplier_id"),
    )

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actors.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    price_per_unit: Mapped[Money] = mapped_column(nullable=False)
    stock_quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    min_order_quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.min_order_quantity

    def __repr__(self) -> str:
        return f"<Product {self.name} stock={self.stock_quantity}>"

"""
sourcing_kernel.services.inventory_service -- atomic stock movements.

Responsibility:
    Reserves stock for an order, restores it on reject/cancel, and applies
    supplier restocks.

Invariants enforced:
    - Product.stock_quantity never goes negative.  Each reservation is a
      single conditional UPDATE (``SET stock = stock - q WHERE stock >= q``);
      there is no read-check-write window.
    - All-or-nothing: the reservations of one call run inside a SAVEPOINT.
      If any line fails, every decrement already made by the call is rolled
      back before InsufficientStockError is raised.
    - Lines are applied in product-id order so concurrent multi-product
      orders acquire row locks in the same order.

Failure modes:
    - InsufficientStockError(product_id, requested, available).
    - ProductNotFoundError for unknown products.
    - UnauthorizedError when a supplier restocks another supplier's product.
    - ValidationError on non-positive quantities.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sourcing_kernel.domain.dtos import ProductStock
from sourcing_kernel.exceptions import (
    InsufficientStockError,
    ProductNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.models.product import Product
from sourcing_kernel.selectors.catalog_selector import CatalogSelector

logger = get_logger("services.inventory")


def _merge_lines(lines: Iterable[tuple[UUID, int]]) -> list[tuple[UUID, int]]:
    totals: Counter[UUID] = Counter()
    for product_id, quantity in lines:
        if quantity <= 0:
            raise ValidationError(
                f"Quantity must be positive for product {product_id}", field="quantity"
            )
        totals[product_id] += quantity
    return sorted(totals.items(), key=lambda item: str(item[0]))


class InventoryService:
    def __init__(self, session: Session) -> None:
        self._session = session

    def reserve(self, lines: Iterable[tuple[UUID, int]]) -> dict[UUID, int]:
        """
        Decrement stock for every (product_id, quantity) line, atomically.

        Returns:
            Remaining stock per product after the reservation.
        """
        merged = _merge_lines(lines)
        with self._session.begin_nested():
            for product_id, quantity in merged:
                result = self._session.execute(
                    update(Product)
                    .where(
                        Product.id == product_id,
                        Product.stock_quantity >= quantity,
                    )
                    .values(stock_quantity=Product.stock_quantity - quantity)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    available = self._current_stock(product_id)
                    logger.warning(
                        "stock_reservation_failed",
                        extra={
                            "product_id": str(product_id),
                            "requested": quantity,
                            "available": available,
                        },
                    )
                    raise InsufficientStockError(str(product_id), quantity, available)

        remaining = self._refresh([pid for pid, _ in merged])
        logger.info(
            "stock_reserved",
            extra={
                "lines": len(merged),
                "units": sum(q for _, q in merged),
            },
        )
        return remaining

    def restore(self, lines: Iterable[tuple[UUID, int]]) -> dict[UUID, int]:
        """Inverse of reserve(): add the quantities back."""
        merged = _merge_lines(lines)
        for product_id, quantity in merged:
            self._session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + quantity)
                .execution_options(synchronize_session=False)
            )
        remaining = self._refresh([pid for pid, _ in merged])
        logger.info(
            "stock_restored",
            extra={"lines": len(merged), "units": sum(q for _, q in merged)},
        )
        return remaining

    def restock(self, product_id: UUID, supplier_id: UUID, quantity: int) -> ProductStock:
        """Supplier adds ``quantity`` units to one of their products."""
        if quantity <= 0:
            raise ValidationError("Restock quantity must be positive", field="quantity")
        owner = self._session.execute(
            select(Product.supplier_id).where(Product.id == product_id)
        ).scalar_one_or_none()
        if owner is None:
            raise ProductNotFoundError(str(product_id))
        if owner != supplier_id:
            raise UnauthorizedError(str(supplier_id), "product", str(product_id), "restock")

        self.restore([(product_id, quantity)])
        product = self._session.get(Product, product_id)
        logger.info(
            "product_restocked",
            extra={
                "product_id": str(product_id),
                "quantity": quantity,
                "stock_quantity": product.stock_quantity,
            },
        )
        return ProductStock(
            product_id=product.id,
            supplier_id=product.supplier_id,
            name=product.name,
            category=product.category,
            stock_quantity=product.stock_quantity,
            min_order_quantity=product.min_order_quantity,
        )

    def low_stock(self, supplier_id: UUID) -> list[ProductStock]:
        return CatalogSelector(self._session).low_stock_products(supplier_id)

    def _current_stock(self, product_id: UUID) -> int:
        stock = self._session.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        ).scalar_one_or_none()
        if stock is None:
            raise ProductNotFoundError(str(product_id))
        return stock

    def _refresh(self, product_ids: list[UUID]) -> dict[UUID, int]:
        rows = self._session.execute(
            select(Product)
            .where(Product.id.in_(product_ids))
            .execution_options(populate_existing=True)
        ).scalars()
        return {p.id: p.stock_quantity for p in rows}

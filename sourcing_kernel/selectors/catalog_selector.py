"""
Module: sourcing_kernel.selectors.catalog_selector
Responsibility: Read-side queries over actors and products: matcher
    candidates, low-stock listings.
Architecture position: Kernel > Selectors.  Read-only.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select

from sourcing_kernel.domain.dtos import ProductStock
from sourcing_kernel.domain.geo import resolve_location
from sourcing_kernel.domain.matching import SupplierCandidate
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.product import Product
from sourcing_kernel.selectors.base import BaseSelector


def _to_stock(product: Product) -> ProductStock:
    return ProductStock(
        product_id=product.id,
        supplier_id=product.supplier_id,
        name=product.name,
        category=product.category,
        stock_quantity=product.stock_quantity,
        min_order_quantity=product.min_order_quantity,
    )


class CatalogSelector(BaseSelector):
    def supplier_candidates(
        self,
        category: str,
        exclude_supplier_ids: Iterable[UUID] = (),
    ) -> list[SupplierCandidate]:
        """Active suppliers with at least one in-stock, available product in ``category``."""
        excluded = [str(sid) for sid in exclude_supplier_ids]

        product_count = func.count(Product.id).label("available_product_count")
        stmt = (
            select(Actor, product_count)
            .join(Product, Product.supplier_id == Actor.id)
            .where(
                Actor.role == "supplier",
                Actor.is_active.is_(True),
                func.lower(Product.category) == category.strip().lower(),
                Product.is_available.is_(True),
                Product.stock_quantity > 0,
            )
            .group_by(Actor.id)
            .having(product_count > 0)
        )
        if excluded:
            stmt = stmt.where(Actor.id.not_in(excluded))

        candidates = []
        for actor, count in self.session.execute(stmt).all():
            candidates.append(
                SupplierCandidate(
                    supplier_id=actor.id,
                    name=actor.name,
                    trust_score=actor.trust_score,
                    location=resolve_location(
                        actor.latitude, actor.longitude, actor.city, actor.state
                    ),
                    available_product_count=int(count),
                    city=actor.city,
                )
            )
        return candidates

    def low_stock_products(self, supplier_id: UUID) -> list[ProductStock]:
        """Products at or below their minimum order quantity."""
        rows = self.session.execute(
            select(Product)
            .where(
                Product.supplier_id == supplier_id,
                Product.stock_quantity <= Product.min_order_quantity,
            )
            .order_by(Product.stock_quantity, Product.name)
        ).scalars()
        return [_to_stock(p) for p in rows]

"""
sourcing_kernel.services.supplier_matcher -- pick suppliers for a request.

Loads eligible suppliers (active, not excluded, at least one available
in-stock product in the category) through CatalogSelector and ranks them
with ``domain.matching``.  Uses each supplier's stored trust score.

Returns None when nobody is eligible; that is "no match", not an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from sourcing_kernel.domain.geo import GeoIndex, GeoPoint
from sourcing_kernel.domain.matching import SupplierMatch, rank_candidates
from sourcing_kernel.domain.policy import MatchingPolicy
from sourcing_kernel.domain.trust import ActorRole
from sourcing_kernel.exceptions import ActorNotFoundError, ValidationError
from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.selectors.catalog_selector import CatalogSelector

logger = get_logger("services.supplier_matcher")


class SupplierMatcher:
    def __init__(
        self,
        session: Session,
        policy: MatchingPolicy | None = None,
        geo: GeoIndex | None = None,
    ) -> None:
        self._session = session
        self._policy = policy or MatchingPolicy()
        self._geo = geo or GeoIndex()
        self._catalog = CatalogSelector(session)

    def find_best_supplier(
        self,
        vendor_location: GeoPoint,
        category: str,
        exclude_supplier_ids: Iterable[UUID] = (),
    ) -> SupplierMatch | None:
        ranked = self.rank_suppliers(vendor_location, category, exclude_supplier_ids)
        best = ranked[0] if ranked else None
        logger.info(
            "supplier_match_selected" if best else "supplier_match_none",
            extra={
                "category": category,
                "candidates": len(ranked),
                "supplier_id": str(best.supplier_id) if best else None,
                "score": best.score if best else None,
            },
        )
        return best

    def rank_suppliers(
        self,
        vendor_location: GeoPoint,
        category: str,
        exclude_supplier_ids: Iterable[UUID] = (),
        *,
        max_distance_km: float | None = None,
        min_trust_score: int | None = None,
        limit: int | None = None,
        vendor_city: str | None = None,
    ) -> list[SupplierMatch]:
        """All eligible suppliers, best first, with recommendation reasons."""
        if not category or not category.strip():
            raise ValidationError("Category is required", field="category")
        candidates = self._catalog.supplier_candidates(category, exclude_supplier_ids)
        ranked = rank_candidates(
            vendor_location,
            candidates,
            self._policy,
            max_distance_km=max_distance_km,
            min_trust_score=min_trust_score,
            vendor_city=vendor_city,
        )
        return ranked[:limit] if limit is not None else ranked

    def find_for_vendor(
        self,
        vendor_id: UUID,
        category: str,
        exclude_supplier_ids: Iterable[UUID] = (),
    ) -> SupplierMatch | None:
        """Match using the vendor's own stored location."""
        vendor = self._session.get(Actor, vendor_id)
        if vendor is None or vendor.role != ActorRole.VENDOR.value:
            raise ActorNotFoundError(str(vendor_id))
        location = self._geo.resolve(
            vendor.latitude, vendor.longitude, vendor.city, vendor.state
        )
        if location.is_fallback:
            logger.warning(
                "vendor_location_fallback",
                extra={"vendor_id": str(vendor_id), "city": vendor.city, "state": vendor.state},
            )
        return self.find_best_supplier(location, category, exclude_supplier_ids)

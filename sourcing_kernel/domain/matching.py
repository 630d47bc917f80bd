"""
Supplier matching (``sourcing_kernel.domain.matching``).

Pure ranking of eligible suppliers for a vendor's category request::

    score = 0.40 * trust_score
          + 0.35 * (100 - min(distance_km, 100))
          + 0.25 * min(available_product_count, 20) * 5

Highest score wins; ties go to the shorter distance, then to the lower
supplier id (string order).  An empty candidate list means "no match".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from sourcing_kernel.domain.geo import GeoPoint, distance_km
from sourcing_kernel.domain.policy import MatchingPolicy


@dataclass(frozen=True)
class SupplierCandidate:
    """An eligible supplier as seen by the matcher."""

    supplier_id: UUID
    name: str
    trust_score: int
    location: GeoPoint
    available_product_count: int
    city: str | None = None


@dataclass(frozen=True)
class SupplierMatch:
    supplier_id: UUID
    name: str
    score: float
    distance_km: float
    trust_score: int
    available_product_count: int
    location_is_fallback: bool = False
    reasons: tuple[str, ...] = field(default_factory=tuple)


def composite_score(
    trust_score: float,
    distance: float,
    available_product_count: int,
    policy: MatchingPolicy,
) -> float:
    distance_component = policy.distance_cap_km - min(distance, policy.distance_cap_km)
    catalog_component = (
        min(available_product_count, policy.product_count_cap) * policy.points_per_product
    )
    raw = (
        policy.trust_weight * trust_score
        + policy.distance_weight * distance_component
        + policy.catalog_weight * catalog_component
    )
    # Rounded so tie-breaking is not decided by float noise.
    return round(raw, 6)


def recommendation_reasons(
    candidate: SupplierCandidate,
    distance: float,
    vendor_city: str | None = None,
) -> tuple[str, ...]:
    reasons: list[str] = []
    if candidate.trust_score >= 90:
        reasons.append("Excellent trust score")
    elif candidate.trust_score >= 80:
        reasons.append("High trust score")
    if distance <= 2:
        reasons.append("Very close to your location")
    elif distance <= 5:
        reasons.append("Nearby location")
    if candidate.available_product_count >= 10:
        reasons.append("Wide selection in this category")
    if (
        vendor_city
        and candidate.city
        and candidate.city.strip().lower() == vendor_city.strip().lower()
    ):
        reasons.append("Located in your city")
    if candidate.location.is_fallback:
        reasons.append("Approximate location")
    return tuple(reasons)


def score_candidate(
    vendor_location: GeoPoint,
    candidate: SupplierCandidate,
    policy: MatchingPolicy,
    vendor_city: str | None = None,
) -> SupplierMatch:
    distance = distance_km(vendor_location, candidate.location)
    return SupplierMatch(
        supplier_id=candidate.supplier_id,
        name=candidate.name,
        score=composite_score(
            candidate.trust_score,
            distance,
            candidate.available_product_count,
            policy,
        ),
        distance_km=distance,
        trust_score=candidate.trust_score,
        available_product_count=candidate.available_product_count,
        location_is_fallback=candidate.location.is_fallback,
        reasons=recommendation_reasons(candidate, distance, vendor_city),
    )


def _sort_key(match: SupplierMatch) -> tuple[float, float, str]:
    return (-match.score, match.distance_km, str(match.supplier_id))


def rank_candidates(
    vendor_location: GeoPoint,
    candidates: Iterable[SupplierCandidate],
    policy: MatchingPolicy | None = None,
    *,
    max_distance_km: float | None = None,
    min_trust_score: int | None = None,
    vendor_city: str | None = None,
) -> list[SupplierMatch]:
    """Score and order candidates best-first."""
    policy = policy or MatchingPolicy()
    matches = []
    for candidate in candidates:
        if candidate.available_product_count <= 0:
            continue
        if min_trust_score is not None and candidate.trust_score < min_trust_score:
            continue
        match = score_candidate(vendor_location, candidate, policy, vendor_city)
        if max_distance_km is not None and match.distance_km > max_distance_km:
            continue
        matches.append(match)
    matches.sort(key=_sort_key)
    return matches


def select_best(
    vendor_location: GeoPoint,
    candidates: Iterable[SupplierCandidate],
    policy: MatchingPolicy | None = None,
) -> SupplierMatch | None:
    ranked = rank_candidates(vendor_location, candidates, policy)
    return ranked[0] if ranked else None

"""Tests for the supplier composite score and ranking order."""

from uuid import UUID, uuid4

import pytest

from sourcing_kernel.domain.geo import DEFAULT_LOCATION, GeoPoint
from sourcing_kernel.domain.matching import (
    SupplierCandidate,
    composite_score,
    rank_candidates,
    select_best,
)
from sourcing_kernel.domain.policy import MatchingPolicy

MUMBAI = GeoPoint(19.0760, 72.8777)
KM_PER_DEGREE = 111.19


def north_of(origin: GeoPoint, km: float) -> GeoPoint:
    return GeoPoint(origin.lat + km / KM_PER_DEGREE, origin.lng)


def candidate(name, trust, location, products, supplier_id=None, city=None):
    return SupplierCandidate(
        supplier_id=supplier_id or uuid4(),
        name=name,
        trust_score=trust,
        location=location,
        available_product_count=products,
        city=city,
    )


class TestCompositeScore:
    def test_mumbai_pair(self):
        policy = MatchingPolicy()
        assert composite_score(85, 2.0, 3, policy) == pytest.approx(72.05)
        assert composite_score(60, 1.0, 1, policy) == pytest.approx(59.9)

    def test_distance_beyond_cap_contributes_nothing(self):
        policy = MatchingPolicy()
        assert composite_score(50, 100.0, 0, policy) == composite_score(50, 450.0, 0, policy)
        assert composite_score(50, 450.0, 0, policy) == pytest.approx(20.0)

    def test_catalog_component_caps_at_twenty_products(self):
        policy = MatchingPolicy()
        assert composite_score(50, 0.0, 20, policy) == composite_score(50, 0.0, 75, policy)


class TestRanking:
    def test_trusted_supplier_with_wider_range_wins(self):
        a = candidate("A", 85, north_of(MUMBAI, 2), 3)
        b = candidate("B", 60, north_of(MUMBAI, 1), 1)

        ranked = rank_candidates(MUMBAI, [b, a])

        assert [m.name for m in ranked] == ["A", "B"]
        assert ranked[0].score == pytest.approx(72.05, abs=0.01)
        assert ranked[1].score == pytest.approx(59.9, abs=0.01)

    def test_equal_scores_prefer_shorter_distance(self):
        near = candidate("near", 80, north_of(MUMBAI, 150), 2)
        far = candidate("far", 80, north_of(MUMBAI, 300), 2)

        ranked = rank_candidates(MUMBAI, [far, near])

        assert ranked[0].score == ranked[1].score
        assert [m.name for m in ranked] == ["near", "far"]

    def test_full_tie_goes_to_lower_id(self):
        low = candidate("low", 70, MUMBAI, 4, supplier_id=UUID(int=1))
        high = candidate("high", 70, MUMBAI, 4, supplier_id=UUID(int=2))

        assert [m.name for m in rank_candidates(MUMBAI, [high, low])] == ["low", "high"]
        assert [m.name for m in rank_candidates(MUMBAI, [low, high])] == ["low", "high"]

    def test_suppliers_without_available_products_are_skipped(self):
        empty = candidate("empty", 99, MUMBAI, 0)
        assert rank_candidates(MUMBAI, [empty]) == []
        assert select_best(MUMBAI, [empty]) is None

    def test_no_candidates_means_no_match(self):
        assert select_best(MUMBAI, []) is None

    def test_filters(self):
        near_low_trust = candidate("low", 20, north_of(MUMBAI, 1), 5)
        far_high_trust = candidate("far", 95, north_of(MUMBAI, 40), 5)

        by_trust = rank_candidates(MUMBAI, [near_low_trust, far_high_trust], min_trust_score=50)
        by_distance = rank_candidates(
            MUMBAI, [near_low_trust, far_high_trust], max_distance_km=10
        )

        assert [m.name for m in by_trust] == ["far"]
        assert [m.name for m in by_distance] == ["low"]


class TestReasons:
    def test_strong_local_supplier(self):
        c = candidate("A", 92, north_of(MUMBAI, 1), 12, city="mumbai")
        match = rank_candidates(MUMBAI, [c], vendor_city="Mumbai")[0]
        assert match.reasons == (
            "Excellent trust score",
            "Very close to your location",
            "Wide selection in this category",
            "Located in your city",
        )

    def test_fallback_location_is_flagged(self):
        c = candidate("A", 50, DEFAULT_LOCATION, 1)
        match = select_best(MUMBAI, [c])
        assert match.location_is_fallback
        assert "Approximate location" in match.reasons

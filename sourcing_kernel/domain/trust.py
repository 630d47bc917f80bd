"""
Trust scoring (``sourcing_kernel.domain.trust``).

Responsibility
--------------
Pure computation of the 10-100 reputation score for vendors and suppliers
from a snapshot of their order/payment history.  The history itself is
gathered by ``selectors.history_selector``; persistence of refreshed
scores lives in ``services.trust_score_service``.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Formulas
--------
Supplier::

    100 * (0.35 * on_time + 0.25 * avg_rating / 5
           + 0.20 * pricing + 0.20 * fulfillment)

    on_time      = delivered / total orders
    fulfillment  = orders not ended rejected/cancelled / total orders
    avg_rating   = mean supplier rating (0 when unrated)
    pricing      = policy constant

Vendor::

    100 * (0.40 * payment_timeliness + 0.30 * consistency
           + 0.30 * engagement)

    payment_timeliness = completed payments / max(total payments, 1)
    consistency        = 0.8 once the vendor has ordered, else 0.5
    engagement         = min(order count / 10, 1)

Zero historical orders yields the default score.  Results are rounded
half-up and clamped to [score_floor, score_ceiling] (10..100 by default).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from sourcing_kernel.domain.policy import TrustPolicy


class ActorRole(str, Enum):
    VENDOR = "vendor"
    SUPPLIER = "supplier"


@dataclass(frozen=True)
class ActorHistory:
    """Aggregated order/payment history for one actor in one role."""

    role: ActorRole
    total_orders: int = 0
    delivered_orders: int = 0
    failed_orders: int = 0
    rating_count: int = 0
    rating_total: int = 0
    total_payments: int = 0
    completed_payments: int = 0

    @property
    def average_rating(self) -> Decimal:
        if self.rating_count == 0:
            return Decimal("0")
        return Decimal(self.rating_total) / Decimal(self.rating_count)


@dataclass(frozen=True)
class TrustScore:
    """Computed score plus the factor values that produced it."""

    score: int
    role: ActorRole
    factors: dict[str, Any] = field(default_factory=dict)
    is_default: bool = False


def clamp_score(raw: Decimal, policy: TrustPolicy) -> int:
    rounded = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(policy.score_floor, min(policy.score_ceiling, rounded))


def _ratio(numerator: int, denominator: int) -> Decimal:
    if denominator <= 0:
        return Decimal("0")
    return Decimal(numerator) / Decimal(denominator)


def supplier_factors(history: ActorHistory, policy: TrustPolicy) -> dict[str, Decimal]:
    total = history.total_orders
    return {
        "on_time_delivery_rate": _ratio(history.delivered_orders, total),
        "average_rating": history.average_rating,
        "pricing_competitiveness": policy.pricing_competitiveness,
        "order_fulfillment_rate": _ratio(total - history.failed_orders, total),
    }


def vendor_factors(history: ActorHistory, policy: TrustPolicy) -> dict[str, Decimal]:
    consistency = (
        policy.vendor_consistency_with_orders
        if history.total_orders >= 1
        else policy.vendor_consistency_without_orders
    )
    engagement = min(
        _ratio(history.total_orders, policy.engagement_order_target),
        Decimal("1"),
    )
    return {
        "payment_timeliness": _ratio(
            history.completed_payments, max(history.total_payments, 1)
        ),
        "order_consistency": consistency,
        "platform_engagement": engagement,
    }


def compute_trust_score(
    history: ActorHistory,
    policy: TrustPolicy | None = None,
) -> TrustScore:
    """Score an actor from its history snapshot."""
    policy = policy or TrustPolicy()

    if history.total_orders == 0:
        return TrustScore(
            score=policy.default_score,
            role=history.role,
            is_default=True,
        )

    if history.role == ActorRole.SUPPLIER:
        factors = supplier_factors(history, policy)
        raw = Decimal("100") * (
            policy.supplier_on_time_weight * factors["on_time_delivery_rate"]
            + policy.supplier_rating_weight * factors["average_rating"] / Decimal("5")
            + policy.supplier_pricing_weight * factors["pricing_competitiveness"]
            + policy.supplier_fulfillment_weight * factors["order_fulfillment_rate"]
        )
    else:
        factors = vendor_factors(history, policy)
        raw = Decimal("100") * (
            policy.vendor_payment_weight * factors["payment_timeliness"]
            + policy.vendor_consistency_weight * factors["order_consistency"]
            + policy.vendor_engagement_weight * factors["platform_engagement"]
        )

    return TrustScore(
        score=clamp_score(raw, policy),
        role=history.role,
        factors={name: str(value) for name, value in factors.items()}
        | {"raw_score": str(raw)},
    )

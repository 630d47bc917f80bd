"""
Tunable policy values consumed by kernel services.

Every service takes its policy object as an optional constructor argument
and falls back to these defaults.  ``sourcing_config.bridges`` builds the
same dataclasses from YAML; the kernel never imports the config package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class TrustPolicy:
    """Weights and bounds for trust scoring."""

    default_score: int = 50
    score_floor: int = 10
    score_ceiling: int = 100
    pricing_competitiveness: Decimal = Decimal("0.8")
    supplier_on_time_weight: Decimal = Decimal("0.35")
    supplier_rating_weight: Decimal = Decimal("0.25")
    supplier_pricing_weight: Decimal = Decimal("0.20")
    supplier_fulfillment_weight: Decimal = Decimal("0.20")
    vendor_payment_weight: Decimal = Decimal("0.40")
    vendor_consistency_weight: Decimal = Decimal("0.30")
    vendor_engagement_weight: Decimal = Decimal("0.30")
    vendor_consistency_with_orders: Decimal = Decimal("0.8")
    vendor_consistency_without_orders: Decimal = Decimal("0.5")
    engagement_order_target: int = 10

    def __post_init__(self) -> None:
        if not 0 <= self.score_floor <= self.default_score <= self.score_ceiling:
            raise ValueError(
                "Trust bounds must satisfy 0 <= floor <= default <= ceiling, got "
                f"{self.score_floor}/{self.default_score}/{self.score_ceiling}"
            )
        if self.engagement_order_target <= 0:
            raise ValueError("engagement_order_target must be positive")


@dataclass(frozen=True)
class MatchingPolicy:
    """Weights for the supplier composite score."""

    trust_weight: float = 0.40
    distance_weight: float = 0.35
    catalog_weight: float = 0.25
    distance_cap_km: float = 100.0
    product_count_cap: int = 20
    points_per_product: float = 5.0


@dataclass(frozen=True)
class OrderPolicy:
    """Order creation settings."""

    default_payment_terms_days: int = 30
    number_prefix: str = "ORD"
    low_stock_alerts: bool = True


@dataclass(frozen=True)
class ContractPolicy:
    """Contract document defaults."""

    number_prefix: str = "VC"
    validity_days: int = 7
    delivery_clause: str = "2-3 business days"
    quality_clause: str = "Fresh, high-quality products as per industry standards"
    cancellation_clause: str = "Orders can be cancelled within 2 hours of placement"
    dispute_clause: str = (
        "Disputes are first escalated to platform mediation; unresolved "
        "disputes are settled by arbitration in the supplier's state"
    )


@dataclass(frozen=True)
class PaymentPolicy:
    """Gateway and reminder settings."""

    gateway_timeout_seconds: float = 10.0
    reminder_window_days: int = 3
    deferred_methods: frozenset[str] = field(
        default_factory=lambda: frozenset({"pay_later"})
    )


@dataclass(frozen=True)
class NotificationPolicy:
    """Inbox and chat limits."""

    max_message_length: int = 4000
    inbox_page_size: int = 50


@dataclass(frozen=True)
class PolicySet:
    """All service policies, as handed to SourcingOrchestrator."""

    trust: TrustPolicy = field(default_factory=TrustPolicy)
    matching: MatchingPolicy = field(default_factory=MatchingPolicy)
    orders: OrderPolicy = field(default_factory=OrderPolicy)
    contracts: ContractPolicy = field(default_factory=ContractPolicy)
    payments: PaymentPolicy = field(default_factory=PaymentPolicy)
    notifications: NotificationPolicy = field(default_factory=NotificationPolicy)

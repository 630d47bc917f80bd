"""
SourcingConfiguration schema.

Typed, frozen view of the YAML configuration file.  The loader parses
each top-level section into one of these dataclasses; the bridges turn
them into the kernel's policy objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///sourcing.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    busy_timeout: float = 30.0


@dataclass(frozen=True)
class TrustConfig:
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
    engagement_order_target: int = 10


@dataclass(frozen=True)
class MatchingConfig:
    trust_weight: float = 0.40
    distance_weight: float = 0.35
    catalog_weight: float = 0.25
    distance_cap_km: float = 100.0
    product_count_cap: int = 20
    points_per_product: float = 5.0


@dataclass(frozen=True)
class OrdersConfig:
    default_payment_terms_days: int = 30
    number_prefix: str = "ORD"
    low_stock_alerts: bool = True


@dataclass(frozen=True)
class ContractsConfig:
    number_prefix: str = "VC"
    validity_days: int = 7
    delivery_clause: str | None = None
    quality_clause: str | None = None
    cancellation_clause: str | None = None
    dispute_clause: str | None = None


@dataclass(frozen=True)
class PaymentsConfig:
    gateway_timeout_seconds: float = 10.0
    reminder_window_days: int = 3
    deferred_methods: tuple[str, ...] = ("pay_later",)
    simulated_success_rate: float = 0.95
    simulated_seed: int | None = None


@dataclass(frozen=True)
class NotificationsConfig:
    max_message_length: int = 4000
    inbox_page_size: int = 50


@dataclass(frozen=True)
class SourcingConfiguration:
    """The whole configuration file, plus its identity."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    trust: TrustConfig = field(default_factory=TrustConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    orders: OrdersConfig = field(default_factory=OrdersConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    checksum: str = ""
    source: str = ""

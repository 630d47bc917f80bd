"""
Config -> kernel bridges.

Convert a SourcingConfiguration into the kernel's policy dataclasses and
collaborators.  These live in sourcing_config (the producer) because the
kernel must never import sourcing_config.

Usage:
    config = get_active_config()
    policies = build_policy_set(config)
    kernel = SourcingOrchestrator(session, policies, gateway=build_gateway(config))
"""

from __future__ import annotations

import random
from dataclasses import replace

from sourcing_config.schema import SourcingConfiguration
from sourcing_kernel.domain.policy import (
    ContractPolicy,
    MatchingPolicy,
    NotificationPolicy,
    OrderPolicy,
    PaymentPolicy,
    PolicySet,
    TrustPolicy,
)
from sourcing_kernel.services.payment_gateway import SimulatedPaymentGateway


def build_trust_policy(config: SourcingConfiguration) -> TrustPolicy:
    t = config.trust
    return TrustPolicy(
        default_score=t.default_score,
        score_floor=t.score_floor,
        score_ceiling=t.score_ceiling,
        pricing_competitiveness=t.pricing_competitiveness,
        supplier_on_time_weight=t.supplier_on_time_weight,
        supplier_rating_weight=t.supplier_rating_weight,
        supplier_pricing_weight=t.supplier_pricing_weight,
        supplier_fulfillment_weight=t.supplier_fulfillment_weight,
        vendor_payment_weight=t.vendor_payment_weight,
        vendor_consistency_weight=t.vendor_consistency_weight,
        vendor_engagement_weight=t.vendor_engagement_weight,
        engagement_order_target=t.engagement_order_target,
    )


def build_matching_policy(config: SourcingConfiguration) -> MatchingPolicy:
    m = config.matching
    return MatchingPolicy(
        trust_weight=m.trust_weight,
        distance_weight=m.distance_weight,
        catalog_weight=m.catalog_weight,
        distance_cap_km=m.distance_cap_km,
        product_count_cap=m.product_count_cap,
        points_per_product=m.points_per_product,
    )


def build_order_policy(config: SourcingConfiguration) -> OrderPolicy:
    o = config.orders
    return OrderPolicy(
        default_payment_terms_days=o.default_payment_terms_days,
        number_prefix=o.number_prefix,
        low_stock_alerts=o.low_stock_alerts,
    )


def build_contract_policy(config: SourcingConfiguration) -> ContractPolicy:
    c = config.contracts
    policy = ContractPolicy(number_prefix=c.number_prefix, validity_days=c.validity_days)
    # Clauses left unset keep the kernel's standard wording.
    overrides = {
        name: getattr(c, name)
        for name in (
            "delivery_clause",
            "quality_clause",
            "cancellation_clause",
            "dispute_clause",
        )
        if getattr(c, name) is not None
    }
    return replace(policy, **overrides)


def build_payment_policy(config: SourcingConfiguration) -> PaymentPolicy:
    p = config.payments
    return PaymentPolicy(
        gateway_timeout_seconds=p.gateway_timeout_seconds,
        reminder_window_days=p.reminder_window_days,
        deferred_methods=frozenset(p.deferred_methods),
    )


def build_notification_policy(config: SourcingConfiguration) -> NotificationPolicy:
    n = config.notifications
    return NotificationPolicy(
        max_message_length=n.max_message_length,
        inbox_page_size=n.inbox_page_size,
    )


def build_policy_set(config: SourcingConfiguration) -> PolicySet:
    return PolicySet(
        trust=build_trust_policy(config),
        matching=build_matching_policy(config),
        orders=build_order_policy(config),
        contracts=build_contract_policy(config),
        payments=build_payment_policy(config),
        notifications=build_notification_policy(config),
    )


def build_gateway(config: SourcingConfiguration) -> SimulatedPaymentGateway:
    """Simulated gateway; seeded when ``payments.simulated_seed`` is set."""
    p = config.payments
    rng = random.Random(p.simulated_seed) if p.simulated_seed is not None else None
    return SimulatedPaymentGateway(success_rate=p.simulated_success_rate, rng=rng)


def engine_kwargs(config: SourcingConfiguration) -> dict[str, object]:
    """Keyword arguments for ``sourcing_kernel.db.engine.init_engine_from_url``."""
    d = config.database
    return {
        "database_url": d.url,
        "echo": d.echo,
        "pool_size": d.pool_size,
        "max_overflow": d.max_overflow,
        "pool_timeout": d.pool_timeout,
        "pool_recycle": d.pool_recycle,
        "busy_timeout": d.busy_timeout,
    }

"""
Pure domain layer.

Value objects, lifecycle graphs and scoring functions with NO dependencies
on the ORM, the database, the wall clock or any I/O.
"""

from sourcing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sourcing_kernel.domain.geo import GeoIndex, GeoPoint, coordinates_for, distance_km
from sourcing_kernel.domain.matching import SupplierCandidate, SupplierMatch
from sourcing_kernel.domain.order_lifecycle import (
    ContractStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from sourcing_kernel.domain.trust import ActorHistory, ActorRole, TrustScore

__all__ = [
    "ActorHistory",
    "ActorRole",
    "Clock",
    "ContractStatus",
    "DeterministicClock",
    "GeoIndex",
    "GeoPoint",
    "OrderPaymentStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "SupplierCandidate",
    "SupplierMatch",
    "SystemClock",
    "TrustScore",
    "coordinates_for",
    "distance_km",
]

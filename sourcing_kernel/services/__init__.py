"""
sourcing_kernel.services -- stateful services over the domain layer.

This is the only layer that holds database sessions, talks to the payment
gateway or publishes real-time events.  Services flush; callers commit.
"""

from sourcing_kernel.services.contract_service import ContractService
from sourcing_kernel.services.inventory_service import InventoryService
from sourcing_kernel.services.notification_hub import NotificationHub
from sourcing_kernel.services.orchestrator import SourcingOrchestrator
from sourcing_kernel.services.order_workflow import OrderWorkflow
from sourcing_kernel.services.payment_gateway import (
    PaymentGateway,
    SimulatedPaymentGateway,
    shutdown_gateway_executor,
)
from sourcing_kernel.services.payment_service import PaymentService
from sourcing_kernel.services.sequence_service import SequenceService
from sourcing_kernel.services.supplier_matcher import SupplierMatcher
from sourcing_kernel.services.trust_score_service import TrustScoreService

__all__ = [
    "ContractService",
    "InventoryService",
    "NotificationHub",
    "OrderWorkflow",
    "PaymentGateway",
    "PaymentService",
    "SequenceService",
    "SimulatedPaymentGateway",
    "SourcingOrchestrator",
    "SupplierMatcher",
    "TrustScoreService",
    "shutdown_gateway_executor",
]

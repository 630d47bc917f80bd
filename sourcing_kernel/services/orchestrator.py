"""
sourcing_kernel.services.orchestrator -- central wiring for kernel services.

Responsibility:
    Creates every service exactly once for one session and wires them
    together, so the order workflow, contract service and payment service
    share the same NotificationHub, clock and policies.

Non-goals:
    - Does NOT manage transaction boundaries (caller's responsibility).
    - Does NOT own the Session lifecycle (no commit/rollback).

Usage:
    with session_scope() as session:
        kernel = SourcingOrchestrator(session, transport=transport, clock=clock)
        created = kernel.orders.create_order(...)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.geo import GeoIndex
from sourcing_kernel.domain.policy import PolicySet
from sourcing_kernel.realtime.presence import PresenceRegistry
from sourcing_kernel.realtime.transport import RealtimeTransport
from sourcing_kernel.services.contract_service import ContractService
from sourcing_kernel.services.inventory_service import InventoryService
from sourcing_kernel.services.notification_hub import NotificationHub
from sourcing_kernel.services.order_workflow import OrderWorkflow
from sourcing_kernel.services.payment_gateway import PaymentGateway
from sourcing_kernel.services.payment_service import PaymentService
from sourcing_kernel.services.supplier_matcher import SupplierMatcher
from sourcing_kernel.services.trust_score_service import TrustScoreService


class SourcingOrchestrator:
    """Single-instance service container bound to one Session."""

    def __init__(
        self,
        session: Session,
        policies: PolicySet | None = None,
        transport: RealtimeTransport | None = None,
        presence: PresenceRegistry | None = None,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.policies = policies or PolicySet()

        self.notifications = NotificationHub(
            session,
            transport=transport,
            presence=presence,
            clock=self._clock,
            policy=self.policies.notifications,
        )
        self.inventory = InventoryService(session)
        self.trust = TrustScoreService(session, self.policies.trust, self._clock)
        self.matcher = SupplierMatcher(session, self.policies.matching, GeoIndex())
        self.contracts = ContractService(
            session, self.notifications, self.policies.contracts, self._clock,
        )
        self.payments = PaymentService(
            session, self.notifications, gateway, self.policies.payments, self._clock,
        )
        self.orders = OrderWorkflow(
            session,
            self.notifications,
            contracts=self.contracts,
            payments=self.payments,
            inventory=self.inventory,
            matcher=self.matcher,
            trust=self.trust,
            policy=self.policies.orders,
            clock=self._clock,
        )

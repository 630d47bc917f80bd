"""
Module: sourcing_kernel.selectors.history_selector
Responsibility: Aggregate an actor's order, rating and payment history into
    the ``ActorHistory`` snapshot consumed by trust scoring.
Architecture position: Kernel > Selectors.  Read-only.
"""

from uuid import UUID

from sqlalchemy import case, func, select

from sourcing_kernel.domain.order_lifecycle import OrderStatus, PaymentStatus
from sourcing_kernel.domain.trust import ActorHistory, ActorRole
from sourcing_kernel.models.order import Order
from sourcing_kernel.models.payment import Payment
from sourcing_kernel.models.reputation import SupplierRating
from sourcing_kernel.selectors.base import BaseSelector

_FAILED_ORDER_STATUSES = (OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value)


class HistorySelector(BaseSelector):
    """Builds ActorHistory snapshots with aggregate queries."""

    def for_actor(self, actor_id: UUID, role: ActorRole) -> ActorHistory:
        role = ActorRole(role)
        if role == ActorRole.SUPPLIER:
            return self.supplier_history(actor_id)
        return self.vendor_history(actor_id)

    def supplier_history(self, supplier_id: UUID) -> ActorHistory:
        total, delivered, failed = self.session.execute(
            select(
                func.count(Order.id),
                func.coalesce(
                    func.sum(case((Order.status == OrderStatus.DELIVERED.value, 1), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((Order.status.in_(_FAILED_ORDER_STATUSES), 1), else_=0)),
                    0,
                ),
            ).where(Order.supplier_id == supplier_id)
        ).one()

        rating_count, rating_total = self.session.execute(
            select(
                func.count(SupplierRating.id),
                func.coalesce(func.sum(SupplierRating.rating), 0),
            ).where(SupplierRating.supplier_id == supplier_id)
        ).one()

        return ActorHistory(
            role=ActorRole.SUPPLIER,
            total_orders=int(total),
            delivered_orders=int(delivered),
            failed_orders=int(failed),
            rating_count=int(rating_count),
            rating_total=int(rating_total),
        )

    def vendor_history(self, vendor_id: UUID) -> ActorHistory:
        total_orders = self.session.execute(
            select(func.count(Order.id)).where(Order.vendor_id == vendor_id)
        ).scalar_one()

        total_payments, completed_payments = self.session.execute(
            select(
                func.count(Payment.id),
                func.coalesce(
                    func.sum(
                        case((Payment.status == PaymentStatus.COMPLETED.value, 1), else_=0)
                    ),
                    0,
                ),
            ).where(Payment.vendor_id == vendor_id)
        ).one()

        return ActorHistory(
            role=ActorRole.VENDOR,
            total_orders=int(total_orders),
            total_payments=int(total_payments),
            completed_payments=int(completed_payments),
        )

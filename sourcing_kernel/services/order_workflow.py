"""
sourcing_kernel.services.order_workflow -- the order state machine.

Responsibility:
    Creates orders (validation, exact totals, stock reservation, contract,
    notifications, deferred payment) and drives them through

        pending -> accepted | rejected
        accepted -> in_progress -> out_for_delivery -> delivered
        any non-terminal -> cancelled

Architecture position:
    Kernel > Services.  Orchestrates InventoryService, ContractService,
    PaymentService, NotificationHub and SequenceService.  Flushes only; the
    caller owns the transaction.

Invariants enforced:
    - Every mutation loads the order with SELECT ... FOR UPDATE first, so
      concurrent operations on one order serialize.
    - Order total == sum(quantity * unit_price) in Decimal, computed once.
    - Stock is reserved in a savepoint; a shortfall on any line leaves every
      product untouched.
    - Reserved stock goes back exactly once: on reject, or on cancel from a
      stock-holding status.

Failure modes:
    - ValidationError for malformed items, prices, ratings or methods.
    - ActorNotFoundError / ProductNotFoundError / OrderNotFoundError.
    - UnauthorizedError when the caller is not the required party.
    - InsufficientStockError when stock is short.
    - InvalidOrderTransitionError for illegal status moves.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.types import round_money, to_decimal
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.dtos import (
    DeliveryDetails,
    OrderCreated,
    OrderInfo,
    OrderItemInfo,
    OrderItemRequest,
    SupplierRatingInfo,
)
from sourcing_kernel.domain.events import EventName, order_channel
from sourcing_kernel.domain.matching import SupplierMatch
from sourcing_kernel.domain.order_lifecycle import (
    STOCK_HOLDING_STATUSES,
    TERMINAL_ORDER_STATUSES,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    can_transition,
    is_forward_step,
)
from sourcing_kernel.domain.policy import OrderPolicy
from sourcing_kernel.domain.trust import ActorRole
from sourcing_kernel.exceptions import (
    ActorNotFoundError,
    InvalidOrderTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.order import Order, OrderItem
from sourcing_kernel.models.product import Product
from sourcing_kernel.models.reputation import SupplierRating
from sourcing_kernel.services.contract_service import ContractService
from sourcing_kernel.services.inventory_service import InventoryService
from sourcing_kernel.services.locking import lock_order
from sourcing_kernel.services.notification_hub import NotificationHub
from sourcing_kernel.services.payment_service import PaymentService
from sourcing_kernel.services.sequence_service import SequenceService
from sourcing_kernel.services.supplier_matcher import SupplierMatcher
from sourcing_kernel.services.trust_score_service import TrustScoreService

logger = get_logger("services.order_workflow")

_STATUS_TITLES = {
    OrderStatus.IN_PROGRESS: "Order In Progress",
    OrderStatus.OUT_FOR_DELIVERY: "Order Out for Delivery",
    OrderStatus.DELIVERED: "Order Delivered",
}


def _to_dto(order: Order) -> OrderInfo:
    return OrderInfo(
        id=order.id,
        order_number=order.order_number,
        vendor_id=order.vendor_id,
        supplier_id=order.supplier_id,
        status=OrderStatus(order.status),
        payment_status=OrderPaymentStatus(order.payment_status),
        payment_method=PaymentMethod(order.payment_method),
        total_amount=order.total_amount,
        items=tuple(
            OrderItemInfo(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in order.items
        ),
        delivery_address=order.delivery_address,
        payment_terms_days=order.payment_terms_days,
        payment_due_at=order.payment_due_at,
        created_at=order.created_at,
        contract_id=order.contract_id,
        estimated_delivery_at=order.estimated_delivery_at,
        delivered_at=order.delivered_at,
        cancelled_at=order.cancelled_at,
        rejection_reason=order.rejection_reason,
        supplier_notes=order.supplier_notes,
    )


def _validated_lines(
    items: Sequence[OrderItemRequest],
) -> list[tuple[UUID, int, Decimal]]:
    if not items:
        raise ValidationError("Order must contain at least one item", field="items")
    lines = []
    for item in items:
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
            raise ValidationError(
                f"Quantity must be an integer, got {item.quantity!r}", field="quantity"
            )
        if item.quantity <= 0:
            raise ValidationError(
                f"Quantity must be positive for product {item.product_id}",
                field="quantity",
            )
        try:
            price = to_decimal(item.unit_price)
        except (TypeError, InvalidOperation):
            raise ValidationError(
                f"Invalid unit price {item.unit_price!r}", field="unit_price"
            ) from None
        if not price.is_finite() or price < 0:
            raise ValidationError(
                f"Unit price must be non-negative for product {item.product_id}",
                field="unit_price",
            )
        lines.append((item.product_id, item.quantity, price))
    return lines


def _check_approval_terms(
    estimated_delivery_at: datetime | None, payment_terms_days: int | None
) -> None:
    if estimated_delivery_at is not None and (
        not isinstance(estimated_delivery_at, datetime)
        or estimated_delivery_at.tzinfo is None
    ):
        raise ValidationError(
            "estimated_delivery_at must be a timezone-aware datetime",
            field="estimated_delivery_at",
        )
    if payment_terms_days is not None and (
        isinstance(payment_terms_days, bool)
        or not isinstance(payment_terms_days, int)
        or payment_terms_days < 0
    ):
        raise ValidationError(
            f"payment_terms_days must be a non-negative integer, got {payment_terms_days!r}",
            field="payment_terms_days",
        )


class OrderWorkflow:
    def __init__(
        self,
        session: Session,
        notifications: NotificationHub,
        contracts: ContractService | None = None,
        payments: PaymentService | None = None,
        inventory: InventoryService | None = None,
        matcher: SupplierMatcher | None = None,
        trust: TrustScoreService | None = None,
        policy: OrderPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._notifications = notifications
        self._contracts = contracts or ContractService(
            session, notifications, clock=self._clock
        )
        self._payments = payments or PaymentService(
            session, notifications, clock=self._clock
        )
        self._inventory = inventory or InventoryService(session)
        self._matcher = matcher or SupplierMatcher(session)
        self._trust = trust
        self._policy = policy or OrderPolicy()
        self._sequences = SequenceService(session)

    # -----------------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------------

    def create_order(
        self,
        vendor_id: UUID,
        supplier_id: UUID,
        items: Sequence[OrderItemRequest],
        delivery: DeliveryDetails,
        payment_method: PaymentMethod | str = PaymentMethod.PAY_LATER,
    ) -> OrderCreated:
        """
        Place an order and reserve its stock.

        Steps, all inside the caller's transaction:
            1. validate actors, lines, products and the payment method
            2. total = sum(quantity * unit_price), exact
            3. reserve stock for every line (all or nothing)
            4. persist the order, due date = now + supplier payment terms
            5. generate and send the contract
            6. notify the supplier; emit stock alerts for low products
            7. pay_later orders get their deferred payment row
        """
        vendor = self._require_actor(vendor_id, ActorRole.VENDOR)
        supplier = self._require_actor(supplier_id, ActorRole.SUPPLIER)
        lines = _validated_lines(items)
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(
                f"Unknown payment method: {payment_method!r}", field="payment_method"
            ) from None
        if not delivery.address or not delivery.address.strip():
            raise ValidationError("Delivery address is required", field="delivery_address")

        products = self._load_products([pid for pid, _, _ in lines])
        for product_id, quantity, _ in lines:
            product = products.get(product_id)
            if product is None:
                raise ProductNotFoundError(str(product_id))
            if product.supplier_id != supplier_id:
                raise ValidationError(
                    f"Product {product_id} is not sold by supplier {supplier_id}",
                    field="product_id",
                )
            if not product.is_available:
                raise ValidationError(
                    f"Product {product.name} is not available", field="product_id"
                )
            if quantity < product.min_order_quantity:
                raise ValidationError(
                    f"Minimum order quantity for {product.name} is "
                    f"{product.min_order_quantity}",
                    field="quantity",
                )

        total = sum((q * price for _, q, price in lines), Decimal("0"))

        remaining = self._inventory.reserve((pid, q) for pid, q, _ in lines)

        now = self._clock.now()
        terms = supplier.payment_terms_days
        if terms is None:
            terms = self._policy.default_payment_terms_days
        order = Order(
            order_number=self._sequences.next_order_number(self._policy.number_prefix, now),
            vendor_id=vendor_id,
            supplier_id=supplier_id,
            status=OrderStatus.PENDING.value,
            payment_status=OrderPaymentStatus.PENDING.value,
            payment_method=method.value,
            payment_terms_days=terms,
            payment_due_at=now + timedelta(days=terms),
            total_amount=total,
            delivery_address=delivery.address,
            delivery_city=delivery.city,
            delivery_pincode=delivery.pincode,
            notes=delivery.notes,
            created_at=now,
        )
        order.items = [
            OrderItem(
                line_number=idx,
                product_id=product_id,
                product_name=products[product_id].name,
                quantity=quantity,
                unit_price=price,
                total_price=quantity * price,
            )
            for idx, (product_id, quantity, price) in enumerate(lines, start=1)
        ]
        self._session.add(order)
        self._session.flush()

        with LogContext.bind(order_id=order.id, actor_id=vendor_id):
            logger.info(
                "order_created",
                extra={
                    "order_number": order.order_number,
                    "supplier_id": str(supplier_id),
                    "total_amount": total,
                    "lines": len(lines),
                    "payment_method": method.value,
                },
            )

            contract = self._contracts.generate_contract(order)

            self._notifications.create(
                supplier_id,
                EventName.ORDER_RECEIVED,
                "New Order Received",
                f"Order {order.order_number} from {vendor.name}: "
                f"INR {round_money(total)}.",
                {"order_id": order.id, "order_number": order.order_number},
            )
            if self._policy.low_stock_alerts:
                self._emit_stock_alerts(supplier_id, products, remaining)

            payment = None
            if method == PaymentMethod.PAY_LATER and total > 0:
                payment = self._payments.initiate(order.id).payment

        return OrderCreated(order=_to_dto(order), contract=contract, payment=payment)

    def _emit_stock_alerts(
        self,
        supplier_id: UUID,
        products: dict[UUID, Product],
        remaining: dict[UUID, int],
    ) -> None:
        for product_id, stock in sorted(remaining.items(), key=lambda kv: str(kv[0])):
            product = products[product_id]
            if stock > product.min_order_quantity:
                continue
            self._notifications.create(
                supplier_id,
                EventName.STOCK_ALERT,
                "Low Stock Alert",
                f"{product.name} is down to {stock} {product.unit}.",
                {
                    "product_id": product_id,
                    "stock_quantity": stock,
                    "min_order_quantity": product.min_order_quantity,
                },
            )

    # -----------------------------------------------------------------------
    # Supplier decisions
    # -----------------------------------------------------------------------

    def approve(
        self,
        order_id: UUID,
        supplier_id: UUID,
        estimated_delivery_at: datetime | None = None,
        payment_terms_days: int | None = None,
        notes: str | None = None,
    ) -> OrderInfo:
        order = lock_order(self._session, order_id)
        self._require_supplier(order, supplier_id, "approve")
        self._check_transition(order, OrderStatus.ACCEPTED)
        _check_approval_terms(estimated_delivery_at, payment_terms_days)

        order.status = OrderStatus.ACCEPTED.value
        order.estimated_delivery_at = estimated_delivery_at
        if notes is not None:
            order.supplier_notes = notes
        if payment_terms_days is not None:
            order.payment_terms_days = payment_terms_days
            order.payment_due_at = order.created_at + timedelta(days=payment_terms_days)
        self._session.flush()

        if payment_terms_days is not None or estimated_delivery_at is not None:
            self._contracts.update_payment_terms(order, order.payment_terms_days)

        with LogContext.bind(order_id=order_id, actor_id=supplier_id):
            logger.info(
                "order_approved",
                extra={"payment_terms_days": order.payment_terms_days},
            )
        eta = (
            f" Estimated delivery: {estimated_delivery_at:%Y-%m-%d}."
            if estimated_delivery_at
            else ""
        )
        self._notifications.create(
            order.vendor_id,
            EventName.ORDER_APPROVED,
            "Order Approved",
            f"Your order {order.order_number} has been approved.{eta}",
            {
                "order_id": order.id,
                "estimated_delivery_at": estimated_delivery_at,
                "notes": notes,
            },
        )
        return _to_dto(order)

    def reject(self, order_id: UUID, supplier_id: UUID, reason: str | None = None) -> OrderInfo:
        order = lock_order(self._session, order_id)
        self._require_supplier(order, supplier_id, "reject")
        self._check_transition(order, OrderStatus.REJECTED)

        self._inventory.restore((item.product_id, item.quantity) for item in order.items)
        order.status = OrderStatus.REJECTED.value
        order.rejection_reason = reason
        self._session.flush()
        self._contracts.cancel_for_order(order.id)

        with LogContext.bind(order_id=order_id, actor_id=supplier_id):
            logger.info("order_rejected", extra={"reason": reason})
        self._notifications.create(
            order.vendor_id,
            EventName.ORDER_REJECTED,
            "Order Rejected",
            f"Your order {order.order_number} was rejected"
            + (f": {reason}" if reason else "."),
            {"order_id": order.id, "reason": reason},
        )
        self._refresh_trust(order.supplier_id, "order_rejected")
        return _to_dto(order)

    # -----------------------------------------------------------------------
    # Fulfilment
    # -----------------------------------------------------------------------

    def advance(
        self,
        order_id: UUID,
        new_status: OrderStatus | str,
        actor_id: UUID | None = None,
    ) -> OrderInfo:
        """Move one step along accepted -> in_progress -> out_for_delivery -> delivered."""
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {new_status!r}", field="status") from None

        order = lock_order(self._session, order_id)
        if actor_id is not None:
            self._require_supplier(order, actor_id, "advance")
        current = OrderStatus(order.status)
        if not is_forward_step(current, target):
            raise InvalidOrderTransitionError(str(order_id), current.value, target.value)

        order.status = target.value
        if target == OrderStatus.DELIVERED:
            order.delivered_at = self._clock.now()
        self._session.flush()

        with LogContext.bind(order_id=order_id):
            logger.info(
                "order_status_advanced",
                extra={"from_status": current.value, "to_status": target.value},
            )
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": target.value,
        }
        self._notifications.create(
            order.vendor_id,
            EventName.ORDER_STATUS_UPDATE,
            _STATUS_TITLES[target],
            f"Order {order.order_number} is now {target.value.replace('_', ' ')}.",
            payload,
        )
        self._notifications.publish_after_commit(
            order_channel(order.id),
            EventName.ORDER_STATUS_UPDATE,
            {k: str(v) for k, v in payload.items()},
        )
        if target == OrderStatus.DELIVERED:
            self._refresh_trust(order.supplier_id, "order_delivered")
        return _to_dto(order)

    def cancel(self, order_id: UUID, actor_id: UUID | None = None) -> OrderInfo:
        order = lock_order(self._session, order_id)
        if actor_id is not None and actor_id not in (order.vendor_id, order.supplier_id):
            raise UnauthorizedError(str(actor_id), "order", str(order_id), "cancel")
        current = OrderStatus(order.status)
        self._check_transition(order, OrderStatus.CANCELLED)

        if current in STOCK_HOLDING_STATUSES:
            self._inventory.restore((item.product_id, item.quantity) for item in order.items)
        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = self._clock.now()
        self._session.flush()
        self._contracts.cancel_for_order(order.id)

        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            logger.info("order_cancelled", extra={"from_status": current.value})

        if actor_id == order.vendor_id:
            recipients = [order.supplier_id]
        elif actor_id == order.supplier_id:
            recipients = [order.vendor_id]
        else:
            recipients = [order.vendor_id, order.supplier_id]
        for recipient in recipients:
            self._notifications.create(
                recipient,
                EventName.ORDER_CANCELLED,
                "Order Cancelled",
                f"Order {order.order_number} has been cancelled.",
                {"order_id": order.id, "cancelled_by": actor_id},
            )
        self._refresh_trust(order.supplier_id, "order_cancelled")
        return _to_dto(order)

    # -----------------------------------------------------------------------
    # Ratings
    # -----------------------------------------------------------------------

    def rate_supplier(
        self,
        order_id: UUID,
        vendor_id: UUID,
        rating: int,
        review: str | None = None,
    ) -> SupplierRatingInfo:
        """Record the vendor's 1-5 rating of a delivered order, once."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError(f"Rating must be an integer 1-5, got {rating!r}", field="rating")
        order = lock_order(self._session, order_id)
        if order.vendor_id != vendor_id:
            raise UnauthorizedError(str(vendor_id), "order", str(order_id), "rate")
        if order.status != OrderStatus.DELIVERED.value:
            raise ValidationError(
                f"Only delivered orders can be rated; order is {order.status}",
                field="status",
            )
        existing = self._session.execute(
            select(SupplierRating.id).where(SupplierRating.order_id == order_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(f"Order {order_id} has already been rated", field="order_id")

        row = SupplierRating(
            order_id=order_id,
            vendor_id=vendor_id,
            supplier_id=order.supplier_id,
            rating=rating,
            review=review,
            created_at=self._clock.now(),
        )
        self._session.add(row)
        self._session.flush()
        logger.info(
            "supplier_rated",
            extra={"order_id": str(order_id), "supplier_id": str(order.supplier_id), "rating": rating},
        )
        self._refresh_trust(order.supplier_id, "rating_received")
        return SupplierRatingInfo(
            id=row.id,
            order_id=row.order_id,
            vendor_id=row.vendor_id,
            supplier_id=row.supplier_id,
            rating=row.rating,
            review=row.review,
            created_at=row.created_at,
        )

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def get_order(self, order_id: UUID, actor_id: UUID | None = None) -> OrderInfo:
        order = self._session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        if actor_id is not None and actor_id not in (order.vendor_id, order.supplier_id):
            raise UnauthorizedError(str(actor_id), "order", str(order_id), "read")
        return _to_dto(order)

    def list_orders(
        self,
        actor_id: UUID,
        role: ActorRole | str,
        status: OrderStatus | str | None = None,
        limit: int = 50,
    ) -> list[OrderInfo]:
        role = ActorRole(role)
        column = Order.vendor_id if role == ActorRole.VENDOR else Order.supplier_id
        stmt = select(Order).where(column == actor_id)
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        rows = self._session.execute(
            stmt.order_by(Order.created_at.desc(), Order.order_number.desc()).limit(limit)
        ).scalars()
        return [_to_dto(o) for o in rows]

    def recommend_supplier(
        self,
        vendor_id: UUID,
        category: str,
        exclude_supplier_ids: Iterable[UUID] = (),
    ) -> SupplierMatch | None:
        return self._matcher.find_for_vendor(vendor_id, category, exclude_supplier_ids)

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _require_actor(self, actor_id: UUID, role: ActorRole) -> Actor:
        actor = self._session.get(Actor, actor_id)
        if actor is None or not actor.is_active:
            raise ActorNotFoundError(str(actor_id))
        if actor.role != role.value:
            raise ValidationError(
                f"Actor {actor_id} is a {actor.role}, not a {role.value}", field="role"
            )
        return actor

    def _load_products(self, product_ids: list[UUID]) -> dict[UUID, Product]:
        rows = self._session.execute(
            select(Product).where(Product.id.in_(set(product_ids)))
        ).scalars()
        return {p.id: p for p in rows}

    @staticmethod
    def _require_supplier(order: Order, supplier_id: UUID, action: str) -> None:
        if order.supplier_id != supplier_id:
            raise UnauthorizedError(str(supplier_id), "order", str(order.id), action)

    @staticmethod
    def _check_transition(order: Order, target: OrderStatus) -> None:
        current = OrderStatus(order.status)
        if current in TERMINAL_ORDER_STATUSES or not can_transition(current, target):
            raise InvalidOrderTransitionError(str(order.id), current.value, target.value)

    def _refresh_trust(self, actor_id: UUID, reason: str) -> None:
        if self._trust is not None:
            self._trust.refresh(actor_id, reason)

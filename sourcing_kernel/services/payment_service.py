"""
sourcing_kernel.services.payment_service -- payment initiation, gateway
callbacks, refunds and reminders.

Responsibility:
    - initiate(): deferred (pay_later) payments get a due-dated pending row
      and no external call; every other method is charged through the
      injected PaymentGateway under a timeout.
    - process_callback(): applies the gateway's asynchronous verdict.
    - refund(), mark_paid(), send_payment_reminders().

Invariants enforced:
    - Every payment status change is a conditional UPDATE keyed on the
      expected current status, so two concurrent callbacks cannot both
      apply.
    - The order is marked ``paid`` only in the same transaction that moves
      its payment to ``completed``.
    - A failed gateway attempt is stored as its own ``failed`` row; the
      order is left untouched and the caller gets a retryable
      PaymentResult instead of an exception.
    - Callbacks for completed (or refunded) payments are no-ops: no status
      change, no notification.
    - Once an order is paid its other pending or processing rows are closed
      as superseded, and a late failure on any row leaves the order paid.

Failure modes:
    - OrderNotFoundError / PaymentNotFoundError for unknown ids.
    - ValidationError for bad amounts, methods or callback payloads.
    - InvalidPaymentTransitionError for refunds of non-completed payments,
      paying an already-paid order, or paying a closed order.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sourcing_kernel.db.types import round_money, to_decimal
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.dtos import PaymentInfo, PaymentResult
from sourcing_kernel.domain.events import EventName
from sourcing_kernel.domain.order_lifecycle import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from sourcing_kernel.domain.policy import PaymentPolicy
from sourcing_kernel.exceptions import (
    AlreadyCompletedError,
    GatewayError,
    InvalidPaymentTransitionError,
    ValidationError,
)
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.models.order import Order
from sourcing_kernel.models.payment import Payment
from sourcing_kernel.services.locking import lock_order, lock_payment, reload
from sourcing_kernel.services.notification_hub import NotificationHub
from sourcing_kernel.services.payment_gateway import (
    PaymentGateway,
    SimulatedPaymentGateway,
    call_with_timeout,
)

logger = get_logger("services.payment")

_CALLBACK_STATUS_MAP = {
    "success": PaymentStatus.COMPLETED,
    "pending": PaymentStatus.PROCESSING,
    "failed": PaymentStatus.FAILED,
}

_SETTLED = frozenset({PaymentStatus.COMPLETED, PaymentStatus.REFUNDED})

_SETTLED_ORDER_STATES = (OrderPaymentStatus.PAID.value, OrderPaymentStatus.REFUNDED.value)
_CLOSED_ORDER_STATES = (OrderStatus.CANCELLED.value, OrderStatus.REJECTED.value)


def _to_dto(row: Payment) -> PaymentInfo:
    return PaymentInfo(
        id=row.id,
        order_id=row.order_id,
        vendor_id=row.vendor_id,
        supplier_id=row.supplier_id,
        amount=row.amount,
        method=PaymentMethod(row.method),
        status=PaymentStatus(row.status),
        transaction_id=row.transaction_id,
        failure_reason=row.failure_reason,
        due_at=row.due_at,
        paid_at=row.paid_at,
        refunded_amount=row.refunded_amount,
        refunded_at=row.refunded_at,
    )


def _parse_method(method: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise ValidationError(f"Unknown payment method: {method!r}", field="method") from None


def _parse_amount(amount: Decimal | int | str) -> Decimal:
    try:
        value = to_decimal(amount)
    except (TypeError, InvalidOperation):
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}", field="amount")
    return value


class PaymentService:
    def __init__(
        self,
        session: Session,
        notifications: NotificationHub,
        gateway: PaymentGateway | None = None,
        policy: PaymentPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._notifications = notifications
        self._gateway = gateway or SimulatedPaymentGateway()
        self._policy = policy or PaymentPolicy()
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------------
    # Initiation
    # -----------------------------------------------------------------------

    def initiate(
        self,
        order_id: UUID,
        amount: Decimal | int | str | None = None,
        method: PaymentMethod | str | None = None,
    ) -> PaymentResult:
        """
        Start settlement of an order.

        ``amount`` defaults to the order total and ``method`` to the order's
        payment method.
        """
        order = lock_order(self._session, order_id)
        method = _parse_method(method or order.payment_method)
        value = _parse_amount(amount if amount is not None else order.total_amount)

        if order.status in _CLOSED_ORDER_STATES:
            raise InvalidPaymentTransitionError(
                str(order_id), order.status, PaymentStatus.PENDING.value
            )
        if order.payment_status in _SETTLED_ORDER_STATES:
            raise InvalidPaymentTransitionError(
                str(order_id), order.payment_status, PaymentStatus.COMPLETED.value
            )

        with LogContext.bind(order_id=order_id):
            if method.value in self._policy.deferred_methods:
                return self._initiate_deferred(order, value, method)
            return self._initiate_immediate(order, value, method)

    def _initiate_deferred(
        self, order: Order, amount: Decimal, method: PaymentMethod
    ) -> PaymentResult:
        existing = self._session.execute(
            select(Payment).where(
                Payment.order_id == order.id,
                Payment.method == method.value,
                Payment.status == PaymentStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return PaymentResult(success=True, payment=_to_dto(existing))

        payment = Payment(
            order_id=order.id,
            vendor_id=order.vendor_id,
            supplier_id=order.supplier_id,
            amount=amount,
            method=method.value,
            status=PaymentStatus.PENDING.value,
            due_at=order.payment_due_at,
            created_at=self._clock.now(),
        )
        self._session.add(payment)
        order.payment_status = OrderPaymentStatus.PENDING.value
        self._session.flush()

        logger.info(
            "payment_deferred",
            extra={
                "payment_id": str(payment.id),
                "amount": amount,
                "due_at": payment.due_at,
            },
        )
        return PaymentResult(success=True, payment=_to_dto(payment))

    def _initiate_immediate(
        self, order: Order, amount: Decimal, method: PaymentMethod
    ) -> PaymentResult:
        payment = Payment(
            order_id=order.id,
            vendor_id=order.vendor_id,
            supplier_id=order.supplier_id,
            amount=amount,
            method=method.value,
            status=PaymentStatus.PROCESSING.value,
            created_at=self._clock.now(),
        )
        self._session.add(payment)
        self._session.flush()

        payment_id, order_id = payment.id, order.id
        try:
            charge = call_with_timeout(
                lambda: self._gateway.charge(
                    payment_id=payment_id,
                    order_id=order_id,
                    amount=amount,
                    method=method.value,
                ),
                self._policy.gateway_timeout_seconds,
                order_id=str(order_id),
            )
        except (GatewayError, ConnectionError) as exc:
            error = exc if isinstance(exc, GatewayError) else GatewayError(
                str(exc), order_id=str(order_id)
            )
            self._transition(
                payment_id,
                {PaymentStatus.PROCESSING},
                PaymentStatus.FAILED,
                failure_reason=error.reason,
            )
            payment = reload(self._session, Payment, payment_id)
            logger.warning(
                "payment_gateway_failed",
                extra={"payment_id": str(payment_id), "error_code": error.code},
            )
            self._notifications.create(
                order.vendor_id,
                EventName.PAYMENT_FAILED,
                "Payment Failed",
                f"Payment for order {order.order_number} failed: {error.reason}. "
                "Please retry.",
                {"order_id": order_id, "payment_id": payment_id},
            )
            return PaymentResult(
                success=False,
                payment=_to_dto(payment),
                error_code=error.code,
                message=str(error),
                retryable=error.retryable,
            )

        self._complete(order, payment_id, charge.transaction_id)
        payment = reload(self._session, Payment, payment_id)
        return PaymentResult(success=True, payment=_to_dto(payment))

    # -----------------------------------------------------------------------
    # Callbacks and settlement
    # -----------------------------------------------------------------------

    def process_callback(self, payload: Mapping[str, Any]) -> PaymentInfo:
        """
        Apply a gateway callback ``{payment_id, transaction_id, status}``.

        ``status`` is one of success | pending | failed.  Duplicate
        callbacks for a settled payment change nothing.
        """
        try:
            payment_id = UUID(str(payload["payment_id"]))
            reported = str(payload["status"]).lower()
        except (KeyError, ValueError):
            raise ValidationError("Callback needs payment_id and status") from None
        target = _CALLBACK_STATUS_MAP.get(reported)
        if target is None:
            raise ValidationError(
                f"Unknown callback status: {reported!r}", field="status"
            )
        transaction_id = payload.get("transaction_id")

        payment = lock_payment(self._session, payment_id)
        with LogContext.bind(payment_id=payment_id, order_id=payment.order_id):
            if PaymentStatus(payment.status) in _SETTLED:
                logger.info(
                    "payment_callback_duplicate",
                    extra={"status": payment.status, "reported": reported},
                )
                return _to_dto(payment)

            if target == PaymentStatus(payment.status):
                return _to_dto(payment)

            order = lock_order(self._session, payment.order_id)
            try:
                if target == PaymentStatus.COMPLETED:
                    self._complete(order, payment_id, transaction_id)
                elif target == PaymentStatus.PROCESSING:
                    self._transition(
                        payment_id,
                        {PaymentStatus.PENDING, PaymentStatus.FAILED},
                        PaymentStatus.PROCESSING,
                        transaction_id=transaction_id,
                    )
                else:
                    self._fail(order, payment_id, payload.get("reason") or "reported failed")
            except AlreadyCompletedError:
                logger.info("payment_callback_duplicate", extra={"reported": reported})

            logger.info("payment_callback_applied", extra={"reported": reported})
            return _to_dto(reload(self._session, Payment, payment_id))

    def mark_paid(self, payment_id: UUID, transaction_id: str | None = None) -> PaymentInfo:
        """Manually settle a pending/processing/failed payment (idempotent)."""
        payment = lock_payment(self._session, payment_id)
        if PaymentStatus(payment.status) in _SETTLED:
            return _to_dto(payment)
        order = lock_order(self._session, payment.order_id)
        try:
            self._complete(order, payment_id, transaction_id)
        except AlreadyCompletedError:
            pass
        return _to_dto(reload(self._session, Payment, payment_id))

    def refund(self, payment_id: UUID, amount: Decimal | int | str | None = None) -> PaymentInfo:
        """Refund all or part of a completed payment; order status is unchanged."""
        payment = lock_payment(self._session, payment_id)
        value = _parse_amount(amount if amount is not None else payment.amount)
        if value > payment.amount:
            raise ValidationError(
                f"Refund {value} exceeds payment amount {payment.amount}", field="amount"
            )

        try:
            self._transition(
                payment_id,
                {PaymentStatus.COMPLETED},
                PaymentStatus.REFUNDED,
                refunded_amount=value,
                refunded_at=self._clock.now(),
            )
        except AlreadyCompletedError:
            raise InvalidPaymentTransitionError(
                str(payment_id), payment.status, PaymentStatus.REFUNDED.value
            ) from None

        order = lock_order(self._session, payment.order_id)
        order.payment_status = OrderPaymentStatus.REFUNDED.value
        self._session.flush()

        self._notifications.create(
            order.vendor_id,
            EventName.PAYMENT_REFUNDED,
            "Payment Refunded",
            f"INR {round_money(value)} has been refunded for order {order.order_number}.",
            {"order_id": order.id, "payment_id": payment_id, "amount": value},
        )
        logger.info(
            "payment_refunded",
            extra={"payment_id": str(payment_id), "amount": value, "partial": value < payment.amount},
        )
        return _to_dto(reload(self._session, Payment, payment_id))

    def send_payment_reminders(self, within_days: int | None = None) -> int:
        """Notify vendors once about pending payments due within the window."""
        window = self._policy.reminder_window_days if within_days is None else within_days
        now = self._clock.now()
        due = self._session.execute(
            select(Payment.id, Payment.vendor_id, Payment.order_id, Payment.amount, Payment.due_at)
            .join(Order, Order.id == Payment.order_id)
            .where(
                Payment.status == PaymentStatus.PENDING.value,
                Order.payment_status.not_in(_SETTLED_ORDER_STATES),
                Order.status.not_in(_CLOSED_ORDER_STATES),
                Payment.due_at.is_not(None),
                Payment.due_at <= now + timedelta(days=window),
                Payment.reminder_sent_at.is_(None),
            )
            .order_by(Payment.due_at)
        ).all()

        sent = 0
        for row in due:
            claimed = self._session.execute(
                update(Payment)
                .where(Payment.id == row.id, Payment.reminder_sent_at.is_(None))
                .values(reminder_sent_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                continue
            order_number = self._session.execute(
                select(Order.order_number).where(Order.id == row.order_id)
            ).scalar_one()
            overdue = row.due_at < now
            self._notifications.create(
                row.vendor_id,
                EventName.PAYMENT_REMINDER,
                "Payment Overdue" if overdue else "Payment Due Soon",
                f"Payment of INR {round_money(row.amount)} for order {order_number} "
                f"{'was' if overdue else 'is'} due on {row.due_at:%Y-%m-%d}.",
                {
                    "order_id": row.order_id,
                    "payment_id": row.id,
                    "due_at": row.due_at,
                    "overdue": overdue,
                },
            )
            sent += 1

        logger.info("payment_reminders_sent", extra={"count": sent, "window_days": window})
        return sent

    def list_for_order(self, order_id: UUID) -> list[PaymentInfo]:
        rows = self._session.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at, Payment.id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_dto(r) for r in rows]

    def get(self, payment_id: UUID) -> PaymentInfo:
        return _to_dto(lock_payment(self._session, payment_id))

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _complete(self, order: Order, payment_id: UUID, transaction_id: str | None) -> None:
        now = self._clock.now()
        values: dict[str, Any] = {"paid_at": now, "failure_reason": None}
        if transaction_id:
            values["transaction_id"] = transaction_id
        self._transition(
            payment_id,
            {PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.FAILED},
            PaymentStatus.COMPLETED,
            **values,
        )
        order.payment_status = OrderPaymentStatus.PAID.value
        self._session.flush()
        self._retire_open_payments(order.id, payment_id)

        amount = self._session.execute(
            select(Payment.amount).where(Payment.id == payment_id)
        ).scalar_one()
        self._notifications.create(
            order.supplier_id,
            EventName.PAYMENT_RECEIVED,
            "Payment Received",
            f"Payment of INR {round_money(amount)} received for order {order.order_number}.",
            {"order_id": order.id, "payment_id": payment_id, "amount": amount},
        )
        logger.info(
            "payment_completed",
            extra={"payment_id": str(payment_id), "transaction_id": transaction_id},
        )

    def _fail(self, order: Order, payment_id: UUID, reason: str) -> None:
        self._transition(
            payment_id,
            {PaymentStatus.PENDING, PaymentStatus.PROCESSING},
            PaymentStatus.FAILED,
            failure_reason=reason,
        )
        if order.payment_status in _SETTLED_ORDER_STATES:
            # Another payment already settled the order.
            logger.info(
                "payment_failed_after_settlement",
                extra={"payment_id": str(payment_id), "order_payment_status": order.payment_status},
            )
            return
        order.payment_status = OrderPaymentStatus.FAILED.value
        self._session.flush()
        self._notifications.create(
            order.vendor_id,
            EventName.PAYMENT_FAILED,
            "Payment Failed",
            f"Payment for order {order.order_number} failed: {reason}.",
            {"order_id": order.id, "payment_id": payment_id},
        )

    def _retire_open_payments(self, order_id: UUID, settled_id: UUID) -> int:
        """Close every other pending/processing row once an order is paid."""
        retired = self._session.execute(
            update(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.id != settled_id,
                Payment.status.in_(
                    [PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value]
                ),
            )
            .values(
                status=PaymentStatus.FAILED.value,
                failure_reason=f"superseded by payment {settled_id}",
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if retired:
            logger.info(
                "payments_superseded",
                extra={"settled_payment_id": str(settled_id), "count": retired},
            )
        return retired

    def _transition(
        self,
        payment_id: UUID,
        expected: set[PaymentStatus],
        target: PaymentStatus,
        **values: Any,
    ) -> None:
        """Compare-and-set the payment status; raises if the row moved on."""
        result = self._session.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status.in_([s.value for s in expected]),
            )
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug(
                "payment_status_changed",
                extra={"payment_id": str(payment_id), "status": target.value},
            )
            return

        current = self._session.execute(
            select(Payment.status, Payment.amount).where(Payment.id == payment_id)
        ).one()
        if PaymentStatus(current.status) in _SETTLED:
            raise AlreadyCompletedError(str(payment_id), current.amount)
        raise InvalidPaymentTransitionError(str(payment_id), current.status, target.value)

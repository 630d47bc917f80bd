"""
Tests for OrderWorkflow.

Covers:
- Order creation: totals, numbering, stock reservation, contract, deferred payment
- Validation failures leave no partial state
- Supplier approve/reject
- Fulfilment chain and cancellation
- Ratings and trust refresh
- Queries
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from sourcing_kernel.domain.dtos import DeliveryDetails, OrderItemRequest
from sourcing_kernel.domain.events import order_channel, user_channel
from sourcing_kernel.domain.order_lifecycle import (
    ContractStatus,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from sourcing_kernel.exceptions import (
    ActorNotFoundError,
    InsufficientStockError,
    InvalidOrderTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.models.actor import Actor
from tests.helpers import DELIVERY, events_for, line, stock_of


@pytest.fixture
def place(kernel, session, vendor, supplier):
    """Create an order for the default vendor/supplier and commit it."""

    def _place(*lines, method=PaymentMethod.PAY_LATER):
        created = kernel.orders.create_order(vendor.id, supplier.id, list(lines), DELIVERY, method)
        session.commit()
        return created

    return _place


@pytest.fixture
def accepted_order(kernel, session, place, supplier, tomatoes):
    order = place(line(tomatoes, 10)).order
    kernel.orders.approve(order.id, supplier.id)
    session.commit()
    return order


class TestCreateOrder:
    def test_totals_stock_and_numbering(self, place, session, clock, tomatoes, onions):
        created = place(line(tomatoes, 10), line(onions, 4))
        order = created.order

        assert order.total_amount == Decimal("502.00")
        assert order.order_number == "ORD-20240101-000001"
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == OrderPaymentStatus.PENDING
        assert order.payment_terms_days == 30
        assert order.payment_due_at == clock.now() + timedelta(days=30)
        assert [i.product_name for i in order.items] == ["Tomatoes", "Onions"]
        assert [i.total_price for i in order.items] == [Decimal("400.00"), Decimal("102.00")]
        assert stock_of(session, tomatoes.id) == 90
        assert stock_of(session, onions.id) == 46

    def test_order_numbers_increase(self, place, tomatoes):
        first = place(line(tomatoes, 1)).order
        second = place(line(tomatoes, 1)).order
        assert first.order_number.endswith("-000001")
        assert second.order_number.endswith("-000002")

    def test_contract_sent_and_deferred_payment_created(self, place, tomatoes):
        created = place(line(tomatoes, 5))

        assert created.contract.status == ContractStatus.SENT
        assert created.contract.order_id == created.order.id
        assert created.order.contract_id == created.contract.id
        assert created.contract.contract_number.startswith("VC-")
        assert created.payment is not None
        assert created.payment.method == PaymentMethod.PAY_LATER
        assert created.payment.status == PaymentStatus.PENDING
        assert created.payment.amount == Decimal("200.00")
        assert created.payment.due_at == created.order.payment_due_at

    def test_immediate_method_creates_no_payment(self, place, tomatoes):
        created = place(line(tomatoes, 1), method=PaymentMethod.UPI)
        assert created.payment is None
        assert created.order.payment_method == PaymentMethod.UPI

    def test_free_order_creates_no_payment(self, place, tomatoes):
        created = place(line(tomatoes, 2, unit_price="0"))
        assert created.order.total_amount == Decimal("0")
        assert created.payment is None

    def test_supplier_uses_own_payment_terms(self, kernel, session, vendor, make_supplier, make_product, clock):
        supplier = make_supplier(name="Net15 Traders", payment_terms_days=15)
        rice = make_product(supplier, name="Rice", category="grains", price="60")

        order = kernel.orders.create_order(vendor.id, supplier.id, [line(rice, 3)], DELIVERY).order

        assert order.payment_terms_days == 15
        assert order.payment_due_at == clock.now() + timedelta(days=15)

    def test_notifications_published_only_after_commit(self, kernel, session, transport, vendor, supplier, tomatoes):
        kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 1)], DELIVERY)
        assert transport.published() == []

        session.commit()

        received = events_for(transport, "order_received", user_channel(supplier.id))
        assert len(received) == 1
        assert received[0].payload["title"] == "New Order Received"
        assert {e.channel for e in events_for(transport, "contract_sent")} == {
            user_channel(vendor.id),
            user_channel(supplier.id),
        }

    def test_rollback_discards_everything(self, kernel, session, transport, vendor, supplier, tomatoes):
        kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 7)], DELIVERY)
        session.rollback()

        assert transport.published() == []
        assert stock_of(session, tomatoes.id) == 100
        assert kernel.orders.list_orders(vendor.id, "vendor") == []

    def test_shortfall_on_one_line_reserves_nothing(self, kernel, session, vendor, supplier, tomatoes, onions):
        with pytest.raises(InsufficientStockError) as exc_info:
            kernel.orders.create_order(
                vendor.id, supplier.id, [line(tomatoes, 10), line(onions, 60)], DELIVERY
            )

        assert exc_info.value.product_id == str(onions.id)
        assert exc_info.value.requested == 60
        assert exc_info.value.available == 50
        assert stock_of(session, tomatoes.id) == 100
        assert stock_of(session, onions.id) == 50

    def test_low_stock_alert_sent_to_supplier(self, kernel, session, vendor, supplier, make_product):
        paneer = make_product(supplier, name="Paneer", category="dairy", stock=12, min_order_quantity=2)

        kernel.orders.create_order(vendor.id, supplier.id, [line(paneer, 10)], DELIVERY)

        alerts = [
            n for n in kernel.notifications.list_for_user(supplier.id) if n.type == "stock_alert"
        ]
        assert len(alerts) == 1
        assert alerts[0].title == "Low Stock Alert"
        assert alerts[0].data["stock_quantity"] == 2

    def test_logs_order_created(self, kernel, captured_logs, vendor, supplier, tomatoes):
        order = kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 2)], DELIVERY).order

        records = [r for r in captured_logs() if r["message"] == "order_created"]
        assert len(records) == 1
        assert records[0]["order_id"] == str(order.id)
        assert records[0]["actor_id"] == str(vendor.id)
        assert records[0]["total_amount"] == "80.00"


class TestCreateOrderValidation:
    def test_empty_items(self, kernel, vendor, supplier):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [], DELIVERY)

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, True])
    def test_bad_quantity(self, kernel, vendor, supplier, tomatoes, quantity):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, quantity)], DELIVERY)

    def test_negative_price(self, kernel, vendor, supplier, tomatoes):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(
                vendor.id, supplier.id, [line(tomatoes, 1, unit_price="-1")], DELIVERY
            )

    def test_unknown_product(self, kernel, vendor, supplier, tomatoes):
        bogus = OrderItemRequest(product_id=uuid4(), quantity=1, unit_price=Decimal("1"))
        with pytest.raises(ProductNotFoundError):
            kernel.orders.create_order(vendor.id, supplier.id, [bogus], DELIVERY)

    def test_product_of_another_supplier(self, kernel, vendor, supplier, make_supplier, make_product):
        other = make_supplier(name="Other Farms")
        their_onions = make_product(other, name="Onions")
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(their_onions, 1)], DELIVERY)

    def test_unavailable_product(self, kernel, vendor, supplier, make_product):
        off = make_product(supplier, name="Mangoes", category="fruits", is_available=False)
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(off, 1)], DELIVERY)

    def test_below_minimum_order_quantity(self, kernel, vendor, supplier, make_product):
        sacks = make_product(supplier, name="Potatoes", min_order_quantity=5)
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(sacks, 4)], DELIVERY)

    def test_unknown_payment_method(self, kernel, vendor, supplier, tomatoes):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 1)], DELIVERY, "barter")

    def test_blank_delivery_address(self, kernel, vendor, supplier, tomatoes):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(
                vendor.id, supplier.id, [line(tomatoes, 1)], DeliveryDetails(address="  ")
            )

    def test_roles_must_match(self, kernel, vendor, supplier, tomatoes):
        with pytest.raises(ValidationError):
            kernel.orders.create_order(supplier.id, supplier.id, [line(tomatoes, 1)], DELIVERY)

    def test_unknown_vendor(self, kernel, supplier, tomatoes):
        with pytest.raises(ActorNotFoundError):
            kernel.orders.create_order(uuid4(), supplier.id, [line(tomatoes, 1)], DELIVERY)

    def test_inactive_supplier(self, kernel, session, vendor, supplier, tomatoes):
        session.get(Actor, supplier.id).is_active = False
        session.commit()
        with pytest.raises(ActorNotFoundError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 1)], DELIVERY)


class TestSupplierDecisions:
    def test_approve(self, kernel, session, transport, place, vendor, supplier, tomatoes):
        order = place(line(tomatoes, 3)).order

        approved = kernel.orders.approve(order.id, supplier.id, notes="Loading at 6am")
        session.commit()

        assert approved.status == OrderStatus.ACCEPTED
        assert approved.supplier_notes == "Loading at 6am"
        assert len(events_for(transport, "order_approved", user_channel(vendor.id))) == 1

    def test_approve_with_new_terms_rerenders_contract(self, kernel, place, supplier, tomatoes):
        order = place(line(tomatoes, 3)).order

        approved = kernel.orders.approve(order.id, supplier.id, payment_terms_days=15)
        contract = kernel.contracts.get_for_order(order.id)

        assert approved.payment_terms_days == 15
        assert approved.payment_due_at == order.created_at + timedelta(days=15)
        assert contract.payment_terms_days == 15
        assert "due within 15 days" in contract.terms_text

    @pytest.mark.parametrize(
        "terms",
        [
            {"payment_terms_days": -3},
            {"payment_terms_days": "15"},
            {"estimated_delivery_at": datetime(2024, 1, 3, 9, 0)},
            {"estimated_delivery_at": "2024-01-03"},
        ],
    )
    def test_bad_approval_terms_leave_order_pending(
        self, kernel, session, transport, place, vendor, supplier, tomatoes, terms
    ):
        order = place(line(tomatoes, 3)).order

        with pytest.raises(ValidationError):
            kernel.orders.approve(order.id, supplier.id, notes="Loading at 6am", **terms)
        session.commit()

        unchanged = kernel.orders.get_order(order.id)
        assert unchanged.status == OrderStatus.PENDING
        assert unchanged.supplier_notes is None
        assert unchanged.payment_due_at == order.payment_due_at
        assert events_for(transport, "order_approved") == []

    def test_only_the_supplier_may_approve(self, kernel, place, vendor, tomatoes):
        order = place(line(tomatoes, 1)).order
        with pytest.raises(UnauthorizedError):
            kernel.orders.approve(order.id, vendor.id)

    def test_approve_twice(self, kernel, accepted_order, supplier):
        with pytest.raises(InvalidOrderTransitionError) as exc_info:
            kernel.orders.approve(accepted_order.id, supplier.id)
        assert exc_info.value.current_status == "accepted"

    def test_reject_restores_stock_and_cancels_contract(self, kernel, session, transport, place, vendor, supplier, tomatoes):
        order = place(line(tomatoes, 25)).order
        assert stock_of(session, tomatoes.id) == 75

        rejected = kernel.orders.reject(order.id, supplier.id, reason="Out of season")
        session.commit()

        assert rejected.status == OrderStatus.REJECTED
        assert rejected.rejection_reason == "Out of season"
        assert stock_of(session, tomatoes.id) == 100
        assert kernel.contracts.get_for_order(order.id).status == ContractStatus.CANCELLED
        event = events_for(transport, "order_rejected", user_channel(vendor.id))[0]
        assert "Out of season" in event.payload["message"]
        assert kernel.trust.history(supplier.id)[0].reason == "order_rejected"

    def test_cannot_reject_accepted_order(self, kernel, accepted_order, supplier):
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.reject(accepted_order.id, supplier.id)


class TestFulfilment:
    def test_full_chain(self, kernel, session, transport, clock, accepted_order, supplier, vendor):
        for status in ("in_progress", "out_for_delivery", "delivered"):
            clock.advance(3600)
            info = kernel.orders.advance(accepted_order.id, status, actor_id=supplier.id)
        session.commit()

        assert info.status == OrderStatus.DELIVERED
        assert info.delivered_at == clock.now()
        on_order = events_for(transport, "order_status_update", order_channel(accepted_order.id))
        assert [e.payload["status"] for e in on_order] == [
            "in_progress",
            "out_for_delivery",
            "delivered",
        ]
        titles = [
            e.payload["title"]
            for e in events_for(transport, "order_status_update", user_channel(vendor.id))
        ]
        assert titles == ["Order In Progress", "Order Out for Delivery", "Order Delivered"]

    def test_cannot_skip_steps(self, kernel, accepted_order):
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.advance(accepted_order.id, OrderStatus.DELIVERED)

    def test_advance_does_not_accept_pending_orders(self, kernel, place, tomatoes):
        order = place(line(tomatoes, 1)).order
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.advance(order.id, OrderStatus.ACCEPTED)
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.advance(order.id, OrderStatus.IN_PROGRESS)

    def test_unknown_status(self, kernel, accepted_order):
        with pytest.raises(ValidationError):
            kernel.orders.advance(accepted_order.id, "teleported")

    def test_vendor_cannot_advance(self, kernel, accepted_order, vendor):
        with pytest.raises(UnauthorizedError):
            kernel.orders.advance(accepted_order.id, "in_progress", actor_id=vendor.id)

    def test_unknown_order(self, kernel):
        with pytest.raises(OrderNotFoundError):
            kernel.orders.advance(uuid4(), "in_progress")

    def test_delivery_refreshes_supplier_trust(self, kernel, session, accepted_order, supplier):
        for status in ("in_progress", "out_for_delivery", "delivered"):
            kernel.orders.advance(accepted_order.id, status)

        # 35 on-time + 0 rating + 16 pricing + 20 fulfilment
        assert session.get(Actor, supplier.id).trust_score == 71
        assert kernel.trust.history(supplier.id)[0].reason == "order_delivered"


class TestCancel:
    def test_vendor_cancels_pending_order(self, kernel, session, transport, clock, place, vendor, supplier, tomatoes):
        order = place(line(tomatoes, 30)).order

        cancelled = kernel.orders.cancel(order.id, actor_id=vendor.id)
        session.commit()

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at == clock.now()
        assert stock_of(session, tomatoes.id) == 100
        assert len(events_for(transport, "order_cancelled", user_channel(supplier.id))) == 1
        assert events_for(transport, "order_cancelled", user_channel(vendor.id)) == []

    def test_cancel_in_progress_restores_stock(self, kernel, session, accepted_order, supplier, tomatoes):
        kernel.orders.advance(accepted_order.id, "in_progress")
        kernel.orders.cancel(accepted_order.id, actor_id=supplier.id)
        assert stock_of(session, tomatoes.id) == 100

    def test_system_cancel_notifies_both_parties(self, kernel, session, transport, place, vendor, supplier, tomatoes):
        order = place(line(tomatoes, 1)).order
        kernel.orders.cancel(order.id)
        session.commit()
        assert {e.channel for e in events_for(transport, "order_cancelled")} == {
            user_channel(vendor.id),
            user_channel(supplier.id),
        }

    def test_stranger_cannot_cancel(self, kernel, place, make_vendor, tomatoes):
        order = place(line(tomatoes, 1)).order
        stranger = make_vendor(name="Nosy Neighbour")
        with pytest.raises(UnauthorizedError):
            kernel.orders.cancel(order.id, actor_id=stranger.id)

    def test_cancel_twice_restores_stock_once(self, kernel, session, place, vendor, tomatoes):
        order = place(line(tomatoes, 10)).order
        kernel.orders.cancel(order.id, actor_id=vendor.id)
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.cancel(order.id, actor_id=vendor.id)
        assert stock_of(session, tomatoes.id) == 100

    def test_delivered_order_cannot_be_cancelled(self, kernel, session, accepted_order, tomatoes):
        for status in ("in_progress", "out_for_delivery", "delivered"):
            kernel.orders.advance(accepted_order.id, status)
        with pytest.raises(InvalidOrderTransitionError):
            kernel.orders.cancel(accepted_order.id)
        assert stock_of(session, tomatoes.id) == 90


class TestRating:
    @pytest.fixture
    def delivered_order(self, kernel, session, accepted_order):
        for status in ("in_progress", "out_for_delivery", "delivered"):
            kernel.orders.advance(accepted_order.id, status)
        session.commit()
        return accepted_order

    def test_rating_updates_trust(self, kernel, session, clock, delivered_order, vendor, supplier):
        clock.advance(60)
        rating = kernel.orders.rate_supplier(delivered_order.id, vendor.id, 5, review="Crisp and fresh")

        assert rating.rating == 5
        assert rating.supplier_id == supplier.id
        assert session.get(Actor, supplier.id).trust_score == 96
        assert kernel.trust.history(supplier.id)[0].reason == "rating_received"

    def test_only_once(self, kernel, delivered_order, vendor):
        kernel.orders.rate_supplier(delivered_order.id, vendor.id, 4)
        with pytest.raises(ValidationError):
            kernel.orders.rate_supplier(delivered_order.id, vendor.id, 5)

    @pytest.mark.parametrize("value", [0, 6, 3.5, True])
    def test_out_of_range(self, kernel, delivered_order, vendor, value):
        with pytest.raises(ValidationError):
            kernel.orders.rate_supplier(delivered_order.id, vendor.id, value)

    def test_only_delivered_orders(self, kernel, accepted_order, vendor):
        with pytest.raises(ValidationError):
            kernel.orders.rate_supplier(accepted_order.id, vendor.id, 5)

    def test_supplier_cannot_rate_itself(self, kernel, delivered_order, supplier):
        with pytest.raises(UnauthorizedError):
            kernel.orders.rate_supplier(delivered_order.id, supplier.id, 5)


class TestQueries:
    def test_get_order_checks_party(self, kernel, place, vendor, supplier, make_vendor, tomatoes):
        order = place(line(tomatoes, 1)).order
        assert kernel.orders.get_order(order.id, vendor.id).id == order.id
        assert kernel.orders.get_order(order.id, supplier.id).id == order.id
        with pytest.raises(UnauthorizedError):
            kernel.orders.get_order(order.id, make_vendor(name="Someone Else").id)
        with pytest.raises(OrderNotFoundError):
            kernel.orders.get_order(uuid4())

    def test_list_orders_by_role_and_status(self, kernel, session, place, vendor, supplier, tomatoes):
        first = place(line(tomatoes, 1)).order
        second = place(line(tomatoes, 2)).order
        kernel.orders.approve(second.id, supplier.id)
        session.commit()

        assert {o.id for o in kernel.orders.list_orders(vendor.id, "vendor")} == {first.id, second.id}
        assert [o.id for o in kernel.orders.list_orders(supplier.id, "supplier", status="accepted")] == [
            second.id
        ]
        assert kernel.orders.list_orders(vendor.id, "supplier") == []

    def test_recommend_supplier(self, kernel, vendor, supplier, tomatoes):
        match = kernel.orders.recommend_supplier(vendor.id, "vegetables")
        assert match.supplier_id == supplier.id
        assert kernel.orders.recommend_supplier(vendor.id, "vegetables", [supplier.id]) is None

"""
Tests for NotificationHub.

Covers:
- Inbox operations and ownership checks
- After-commit delivery to live connections
- Presence, vendor room and typing indicators
- Order chat
- Transport failures never fail the caller
"""

from uuid import uuid4

import pytest

from sourcing_kernel.domain.events import PRESENCE_CHANNEL, VENDORS_CHANNEL, order_channel, user_channel
from sourcing_kernel.domain.policy import NotificationPolicy
from sourcing_kernel.exceptions import (
    ActorNotFoundError,
    InsufficientStockError,
    NotificationNotFoundError,
    OrderNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.realtime.transport import InMemoryTransport
from sourcing_kernel.services.notification_hub import NotificationHub
from tests.helpers import DELIVERY, events_for, line


class BrokenTransport:
    def join(self, connection_id, channel):
        pass

    def leave(self, connection_id, channel):
        pass

    def publish(self, channel, event, payload):
        raise RuntimeError("socket closed")


@pytest.fixture
def hub(kernel):
    return kernel.notifications


@pytest.fixture
def order(kernel, session, vendor, supplier, tomatoes):
    created = kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 1)], DELIVERY)
    session.commit()
    return created.order


class TestInbox:
    def test_create_and_list(self, hub, session, vendor):
        info = hub.create(vendor.id, "order_approved", "Order Approved", "Approved.", {"n": 1})
        session.commit()

        assert not info.is_read
        assert [n.id for n in hub.list_for_user(vendor.id)] == [info.id]
        assert hub.unread_count(vendor.id) == 1
        assert hub.get(info.id, vendor.id).data == {"n": 1}

    def test_data_is_stored_as_plain_json(self, hub, clock, vendor):
        order_id = uuid4()
        info = hub.create(vendor.id, "order_received", "t", "m", {"order_id": order_id, "at": clock.now()})
        assert info.data == {"order_id": str(order_id), "at": clock.now().isoformat()}

    def test_mark_read(self, hub, clock, vendor):
        info = hub.create(vendor.id, "stock_alert", "t", "m")
        clock.advance(5)
        read = hub.mark_read(info.id, vendor.id)
        assert read.is_read
        assert read.read_at == clock.now()
        assert hub.unread_count(vendor.id) == 0
        assert hub.list_for_user(vendor.id, unread_only=True) == []

    def test_mark_all_read_and_clear(self, hub, vendor, supplier):
        for _ in range(3):
            hub.create(vendor.id, "stock_alert", "t", "m")
        hub.create(supplier.id, "stock_alert", "t", "m")

        assert hub.mark_all_read(vendor.id) == 3
        assert hub.unread_count(vendor.id) == 0
        assert hub.unread_count(supplier.id) == 1
        assert hub.clear_all(vendor.id) == 3
        assert hub.list_for_user(vendor.id) == []

    def test_delete(self, hub, vendor):
        info = hub.create(vendor.id, "stock_alert", "t", "m")
        hub.delete(info.id, vendor.id)
        with pytest.raises(NotificationNotFoundError):
            hub.get(info.id, vendor.id)

    def test_ownership(self, hub, vendor, supplier):
        info = hub.create(vendor.id, "stock_alert", "t", "m")
        with pytest.raises(UnauthorizedError):
            hub.mark_read(info.id, supplier.id)
        with pytest.raises(UnauthorizedError):
            hub.delete(info.id, supplier.id)

    def test_page_size_from_policy(self, session, transport, clock, vendor):
        hub = NotificationHub(session, transport, clock=clock, policy=NotificationPolicy(inbox_page_size=2))
        for _ in range(4):
            hub.create(vendor.id, "stock_alert", "t", "m")
        assert len(hub.list_for_user(vendor.id)) == 2
        assert len(hub.list_for_user(vendor.id, limit=10)) == 4


class TestDelivery:
    def test_live_connection_receives_after_commit(self, hub, session, transport, vendor):
        hub.connect(vendor.id, "vendor", "conn-1")
        info = hub.create(vendor.id, "order_approved", "Order Approved", "Approved.")
        assert "order_approved" not in [e.event for e in transport.inbox("conn-1")]

        session.commit()

        delivered = [e for e in transport.inbox("conn-1") if e.event == "order_approved"]
        assert len(delivered) == 1
        assert delivered[0].payload["id"] == str(info.id)

    def test_rolled_back_notifications_are_not_pushed(self, hub, session, transport, vendor):
        hub.create(vendor.id, "order_approved", "Order Approved", "Approved.")
        session.rollback()
        assert events_for(transport, "order_approved") == []

    def test_savepoint_rollback_drops_only_its_own_work(self, hub, session, transport, vendor):
        hub.connect(vendor.id, "vendor", "conn-1")
        kept_before = hub.create(vendor.id, "stock_alert", "Before", "m")
        savepoint = session.begin_nested()
        hub.create(vendor.id, "stock_alert", "Inside", "m")
        savepoint.rollback()
        kept_after = hub.create(vendor.id, "stock_alert", "After", "m")
        session.commit()

        pushed = [e.payload["id"] for e in transport.inbox("conn-1") if e.event == "stock_alert"]
        assert pushed == [str(kept_before.id), str(kept_after.id)]

    def test_released_savepoint_waits_for_outer_commit(self, hub, session, transport, vendor):
        savepoint = session.begin_nested()
        hub.create(vendor.id, "stock_alert", "Inside", "m")
        savepoint.commit()
        assert events_for(transport, "stock_alert") == []

        session.rollback()
        assert events_for(transport, "stock_alert") == []

    def test_failed_order_does_not_swallow_earlier_pushes(
        self, kernel, session, transport, vendor, supplier, tomatoes
    ):
        kernel.notifications.connect(supplier.id, "supplier", "s-1")
        placed = kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 2)], DELIVERY)
        with pytest.raises(InsufficientStockError):
            kernel.orders.create_order(vendor.id, supplier.id, [line(tomatoes, 1000)], DELIVERY)
        session.commit()

        received = [e for e in transport.inbox("s-1") if e.event == "order_received"]
        assert [e.payload["data"]["order_id"] for e in received] == [str(placed.order.id)]
        assert [e.event for e in transport.inbox("s-1")].count("contract_sent") == 1

    def test_transport_failure_does_not_fail_commit(self, session, clock, captured_logs, vendor):
        hub = NotificationHub(session, BrokenTransport(), clock=clock)
        hub.create(vendor.id, "order_approved", "Order Approved", "Approved.")
        session.commit()

        assert hub.unread_count(vendor.id) == 1
        assert any(r["message"] == "realtime_publish_failed" for r in captured_logs())


class TestPresence:
    def test_vendor_joins_rooms(self, hub, transport, vendor, supplier):
        hub.connect(vendor.id, "vendor", "v-1")
        hub.connect(supplier.id, "supplier", "s-1")

        assert transport.members(VENDORS_CHANNEL) == {"v-1"}
        assert transport.members(user_channel(vendor.id)) == {"v-1"}
        assert transport.members(PRESENCE_CHANNEL) == {"v-1", "s-1"}

    def test_online_offline_broadcast_once_per_actor(self, hub, transport, vendor):
        hub.connect(vendor.id, "vendor", "tab-1")
        hub.connect(vendor.id, "vendor", "tab-2")
        assert hub.is_user_online(vendor.id)

        hub.disconnect("tab-1")
        assert hub.is_user_online(vendor.id)
        hub.disconnect("tab-2")
        assert not hub.is_user_online(vendor.id)

        statuses = [
            e.payload["status"]
            for e in events_for(transport, "user_status_change", PRESENCE_CHANNEL)
        ]
        assert statuses == ["online", "offline"]

    def test_disconnect_leaves_all_channels(self, hub, transport, order, vendor):
        hub.connect(vendor.id, "vendor", "v-1")
        hub.join_order(order.id, vendor.id, "v-1")
        hub.disconnect("v-1")
        for channel in (VENDORS_CHANNEL, user_channel(vendor.id), order_channel(order.id)):
            assert "v-1" not in transport.members(channel)

    def test_disconnect_discards_inbox(self, hub, session, transport, vendor):
        hub.connect(vendor.id, "vendor", "v-1")
        hub.create(vendor.id, "stock_alert", "t", "m")
        session.commit()
        assert transport.inbox("v-1")

        hub.disconnect("v-1")

        assert transport.inbox("v-1") == []
        assert transport.members(user_channel(vendor.id)) == frozenset()

    def test_new_supplier_announced_to_vendors(self, hub, session, transport, vendor, supplier):
        hub.connect(vendor.id, "vendor", "v-1")
        hub.announce_new_supplier(supplier.id)
        session.commit()

        [event] = [e for e in transport.inbox("v-1") if e.event == "new_supplier"]
        assert event.payload["name"] == "Fresh Farms Co"

    def test_announce_unknown_supplier(self, hub, vendor):
        with pytest.raises(ActorNotFoundError):
            hub.announce_new_supplier(vendor.id)


class TestChat:
    def test_post_and_read(self, hub, session, transport, clock, order, vendor, supplier):
        hub.connect(supplier.id, "supplier", "s-1")
        hub.join_order(order.id, supplier.id, "s-1")

        hub.post_message(order.id, vendor.id, "  Can you deliver by 7?  ")
        clock.advance(10)
        hub.post_message(order.id, supplier.id, "Yes")
        session.commit()

        messages = hub.messages_for_order(order.id, vendor.id)
        assert [m.content for m in messages] == ["Can you deliver by 7?", "Yes"]
        received = [e for e in transport.inbox("s-1") if e.event == "receive_message"]
        assert [e.payload["content"] for e in received] == ["Can you deliver by 7?", "Yes"]

    def test_only_parties_may_post(self, hub, order, make_vendor):
        with pytest.raises(UnauthorizedError):
            hub.post_message(order.id, make_vendor(name="Lurker").id, "hello")

    def test_empty_message(self, hub, order, vendor):
        with pytest.raises(ValidationError):
            hub.post_message(order.id, vendor.id, "   ")

    def test_message_length_limit(self, session, transport, clock, order, vendor):
        hub = NotificationHub(session, transport, clock=clock, policy=NotificationPolicy(max_message_length=10))
        with pytest.raises(ValidationError):
            hub.post_message(order.id, vendor.id, "x" * 11)

    def test_unknown_order(self, hub, vendor):
        with pytest.raises(OrderNotFoundError):
            hub.post_message(uuid4(), vendor.id, "hello")

    def test_typing_is_published_immediately(self, hub, transport, order, vendor):
        hub.set_typing(order.id, vendor.id)
        [event] = events_for(transport, "user_typing", order_channel(order.id))
        assert event.payload == {"order_id": str(order.id), "user_id": str(vendor.id), "is_typing": True}

    def test_leaving_room_stops_chat_delivery(self, hub, session, transport, order, vendor, supplier):
        hub.connect(supplier.id, "supplier", "s-1")
        hub.join_order(order.id, supplier.id, "s-1")
        hub.leave_order(order.id, "s-1")
        hub.post_message(order.id, vendor.id, "Anyone there?")
        session.commit()

        assert "s-1" not in transport.members(order_channel(order.id))
        assert not [e for e in transport.inbox("s-1") if e.event == "receive_message"]

    def test_stranger_cannot_join_order_room(self, hub, order, make_vendor):
        with pytest.raises(UnauthorizedError):
            hub.join_order(order.id, make_vendor(name="Lurker").id, "x-1")


class TestInMemoryTransport:
    def test_history_is_capped(self):
        transport = InMemoryTransport(history_limit=3)
        for n in range(5):
            transport.publish("vendors", "new_supplier", {"n": n})
        assert [p.payload["n"] for p in transport.published()] == [2, 3, 4]

    def test_inbox_is_capped(self):
        transport = InMemoryTransport(inbox_limit=2)
        transport.join("c-1", "vendors")
        for n in range(4):
            transport.publish("vendors", "new_supplier", {"n": n})
        assert [e.payload["n"] for e in transport.inbox("c-1")] == [2, 3]

    def test_inbox_survives_until_last_channel_is_left(self):
        transport = InMemoryTransport()
        transport.join("c-1", "vendors")
        transport.join("c-1", "presence")
        transport.publish("vendors", "new_supplier", {})

        transport.leave("c-1", "vendors")
        assert len(transport.inbox("c-1")) == 1
        transport.leave("c-1", "presence")
        assert transport.inbox("c-1") == []

    def test_leaving_unknown_channel_is_harmless(self):
        transport = InMemoryTransport()
        transport.leave("c-1", "vendors")
        assert transport.members("vendors") == frozenset()

    @pytest.mark.parametrize("kwargs", [{"history_limit": 0}, {"inbox_limit": 0}])
    def test_limits_must_be_positive(self, kwargs):
        with pytest.raises(ValueError):
            InMemoryTransport(**kwargs)

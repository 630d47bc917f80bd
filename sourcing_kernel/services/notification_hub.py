"""
sourcing_kernel.services.notification_hub -- durable notifications with
real-time fan-out.

Responsibility:
    Persists notifications and chat messages, and pushes them to the
    recipients' live channels.  Tracks presence and typing state for
    connected actors.

Architecture position:
    Kernel > Services.  May import from domain/, models/, realtime/.

Delivery model:
    - The Notification row is the source of truth.  The push for a row is
      queued on the session and only published after the surrounding
      transaction commits; work that rolls back is never pushed.
    - Presence and typing events are ephemeral and published immediately.
    - Transport failures are logged and do not fail the calling operation.

Failure modes:
    - NotificationNotFoundError if a notification id is unknown.
    - UnauthorizedError if an actor touches another actor's notification or
      an order they are not a party to.
    - OrderNotFoundError / ActorNotFoundError for unknown ids.
    - ValidationError on empty chat messages.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import delete, event, func, select, update
from sqlalchemy.orm import Session

from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.dtos import ChatMessageInfo, NotificationInfo
from sourcing_kernel.domain.events import (
    PRESENCE_CHANNEL,
    VENDORS_CHANNEL,
    EventName,
    order_channel,
    user_channel,
)
from sourcing_kernel.domain.policy import NotificationPolicy
from sourcing_kernel.domain.trust import ActorRole
from sourcing_kernel.exceptions import (
    ActorNotFoundError,
    NotificationNotFoundError,
    OrderNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.notification import ChatMessage, Notification
from sourcing_kernel.models.order import Order
from sourcing_kernel.realtime.presence import PresenceChange, PresenceRegistry
from sourcing_kernel.realtime.transport import InMemoryTransport, RealtimeTransport

logger = get_logger("services.notification_hub")

_PENDING_KEY = "sourcing_kernel.pending_publications"

# ---------------------------------------------------------------------------
# After-commit dispatch
# ---------------------------------------------------------------------------


def _safe_publish(
    transport: RealtimeTransport,
    channel: str,
    event_name: str,
    payload: dict[str, Any],
) -> int:
    try:
        return transport.publish(channel, event_name, payload)
    except Exception:
        logger.warning(
            "realtime_publish_failed",
            extra={"channel": channel, "event": event_name},
            exc_info=True,
        )
        return 0


@event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    # Releasing a SAVEPOINT fires after_commit too; only the outermost
    # commit makes the queued work durable.
    if session.in_nested_transaction():
        return
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for _savepoints, transport, channel, event_name, payload in pending:
        delivered = _safe_publish(transport, channel, event_name, payload)
        logger.debug(
            "realtime_event_published",
            extra={"channel": channel, "event": event_name, "recipients": delivered},
        )


@event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session: Session, previous_transaction) -> None:
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    if previous_transaction.nested:
        kept = [p for p in pending if previous_transaction not in p[0]]
    else:
        kept = []
    if kept:
        session.info[_PENDING_KEY] = kept
    else:
        session.info.pop(_PENDING_KEY, None)
    if len(kept) < len(pending):
        logger.debug(
            "realtime_events_discarded",
            extra={
                "count": len(pending) - len(kept),
                "savepoint": previous_transaction.nested,
            },
        )


def _open_savepoints(session: Session) -> tuple:
    """The SAVEPOINTs enclosing the current point of work, innermost first."""
    chain = []
    txn = session.get_nested_transaction()
    while txn is not None and txn.nested:
        chain.append(txn)
        txn = txn.parent
    return tuple(chain)


def _to_dto(row: Notification) -> NotificationInfo:
    return NotificationInfo(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        data=dict(row.data or {}),
        is_read=row.is_read,
        created_at=row.created_at,
        read_at=row.read_at,
    )


def _message_to_dto(row: ChatMessage) -> ChatMessageInfo:
    return ChatMessageInfo(
        id=row.id,
        order_id=row.order_id,
        sender_id=row.sender_id,
        content=row.content,
        message_type=row.message_type,
        created_at=row.created_at,
    )


class NotificationHub:
    """Notification inbox, chat log, presence and typing indicators."""

    def __init__(
        self,
        session: Session,
        transport: RealtimeTransport | None = None,
        presence: PresenceRegistry | None = None,
        clock: Clock | None = None,
        policy: NotificationPolicy | None = None,
    ) -> None:
        self._session = session
        self._transport = transport or InMemoryTransport()
        self._presence = presence or PresenceRegistry()
        self._clock = clock or SystemClock()
        self._policy = policy or NotificationPolicy()

    @property
    def transport(self) -> RealtimeTransport:
        return self._transport

    @property
    def presence(self) -> PresenceRegistry:
        return self._presence

    def publish_after_commit(
        self,
        channel: str,
        event_name: str | EventName,
        payload: dict[str, Any],
    ) -> None:
        """Queue a publication that fires when the session commits."""
        name = event_name.value if isinstance(event_name, EventName) else event_name
        self._session.info.setdefault(_PENDING_KEY, []).append(
            (_open_savepoints(self._session), self._transport, channel, name, payload)
        )

    # -----------------------------------------------------------------------
    # Notifications
    # -----------------------------------------------------------------------

    def create(
        self,
        user_id: UUID,
        type: str | EventName,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> NotificationInfo:
        """Append an unread notification and queue its push to ``user_<id>``."""
        type_name = type.value if isinstance(type, EventName) else type
        row = Notification(
            user_id=user_id,
            type=type_name,
            title=title,
            message=message,
            data=_jsonable(data or {}),
            is_read=False,
            created_at=self._clock.now(),
        )
        self._session.add(row)
        self._session.flush()

        info = _to_dto(row)
        self.publish_after_commit(user_channel(user_id), type_name, info.as_payload())
        logger.info(
            "notification_created",
            extra={
                "notification_id": str(row.id),
                "user_id": str(user_id),
                "notification_type": type_name,
            },
        )
        return info

    def get(self, notification_id: UUID, user_id: UUID) -> NotificationInfo:
        return _to_dto(self._owned(notification_id, user_id, "read"))

    def list_for_user(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[NotificationInfo]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id)
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.limit(limit if limit is not None else self._policy.inbox_page_size)
        return [_to_dto(row) for row in self._session.execute(stmt).scalars()]

    def unread_count(self, user_id: UUID) -> int:
        return self._session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    def mark_read(self, notification_id: UUID, user_id: UUID) -> NotificationInfo:
        row = self._owned(notification_id, user_id, "mark read")
        if not row.is_read:
            row.is_read = True
            row.read_at = self._clock.now()
            self._session.flush()
        return _to_dto(row)

    def mark_all_read(self, user_id: UUID) -> int:
        result = self._session.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        logger.info(
            "notifications_marked_read",
            extra={"user_id": str(user_id), "count": result.rowcount},
        )
        return result.rowcount

    def delete(self, notification_id: UUID, user_id: UUID) -> None:
        row = self._owned(notification_id, user_id, "delete")
        self._session.delete(row)
        self._session.flush()

    def clear_all(self, user_id: UUID) -> int:
        result = self._session.execute(
            delete(Notification)
            .where(Notification.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        logger.info(
            "notifications_cleared",
            extra={"user_id": str(user_id), "count": result.rowcount},
        )
        return result.rowcount

    def _owned(self, notification_id: UUID, user_id: UUID, action: str) -> Notification:
        row = self._session.get(Notification, notification_id)
        if row is None:
            raise NotificationNotFoundError(str(notification_id))
        if row.user_id != user_id:
            raise UnauthorizedError(
                str(user_id), "notification", str(notification_id), action
            )
        return row

    # -----------------------------------------------------------------------
    # Connections and presence
    # -----------------------------------------------------------------------

    def connect(self, actor_id: UUID, role: str | ActorRole, connection_id: str) -> None:
        """Attach a live connection: personal channel, vendor room, presence."""
        role = ActorRole(role)
        change = self._presence.connect(actor_id, connection_id)

        channels = [user_channel(actor_id), PRESENCE_CHANNEL]
        if role == ActorRole.VENDOR:
            channels.append(VENDORS_CHANNEL)
        for channel in channels:
            self._transport.join(connection_id, channel)
            self._presence.track_channel(connection_id, channel)

        logger.info(
            "actor_connected",
            extra={"actor_id": str(actor_id), "connection_id": connection_id},
        )
        if change is not None:
            self._broadcast_presence(change)

    def disconnect(self, connection_id: str) -> None:
        for channel in self._presence.channels_of(connection_id):
            self._transport.leave(connection_id, channel)
        change = self._presence.disconnect(connection_id)
        logger.info("actor_disconnected", extra={"connection_id": connection_id})
        if change is not None:
            self._broadcast_presence(change)

    def is_user_online(self, actor_id: UUID) -> bool:
        return self._presence.is_online(actor_id)

    def _broadcast_presence(self, change: PresenceChange) -> None:
        _safe_publish(
            self._transport,
            PRESENCE_CHANNEL,
            EventName.USER_STATUS_CHANGE.value,
            {
                "user_id": str(change.actor_id),
                "status": "online" if change.online else "offline",
                "at": self._clock.now().isoformat(),
            },
        )

    # -----------------------------------------------------------------------
    # Order channels, chat, typing
    # -----------------------------------------------------------------------

    def join_order(self, order_id: UUID, actor_id: UUID, connection_id: str) -> None:
        self._require_party(order_id, actor_id, "join")
        channel = order_channel(order_id)
        self._transport.join(connection_id, channel)
        self._presence.track_channel(connection_id, channel)

    def leave_order(self, order_id: UUID, connection_id: str) -> None:
        channel = order_channel(order_id)
        self._transport.leave(connection_id, channel)
        self._presence.untrack_channel(connection_id, channel)

    def post_message(
        self,
        order_id: UUID,
        sender_id: UUID,
        content: str,
        message_type: str = "text",
    ) -> ChatMessageInfo:
        """Append to the order's chat log and queue ``receive_message``."""
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content is required", field="content")
        limit = self._policy.max_message_length
        if len(text) > limit:
            raise ValidationError(
                f"Message exceeds {limit} characters", field="content"
            )
        self._require_party(order_id, sender_id, "message on")

        row = ChatMessage(
            order_id=order_id,
            sender_id=sender_id,
            content=text,
            message_type=message_type,
            created_at=self._clock.now(),
        )
        self._session.add(row)
        self._session.flush()

        info = _message_to_dto(row)
        self.publish_after_commit(
            order_channel(order_id), EventName.RECEIVE_MESSAGE, info.as_payload()
        )
        logger.info(
            "chat_message_posted",
            extra={"order_id": str(order_id), "sender_id": str(sender_id)},
        )
        return info

    def messages_for_order(self, order_id: UUID, actor_id: UUID) -> list[ChatMessageInfo]:
        self._require_party(order_id, actor_id, "read messages of")
        rows = self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.order_id == order_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        ).scalars()
        return [_message_to_dto(r) for r in rows]

    def set_typing(self, order_id: UUID, actor_id: UUID, is_typing: bool = True) -> None:
        self._require_party(order_id, actor_id, "type on")
        _safe_publish(
            self._transport,
            order_channel(order_id),
            EventName.USER_TYPING.value,
            {"order_id": str(order_id), "user_id": str(actor_id), "is_typing": is_typing},
        )

    def announce_new_supplier(self, supplier_id: UUID) -> None:
        """Queue a ``new_supplier`` broadcast to connected vendors."""
        supplier = self._session.get(Actor, supplier_id)
        if supplier is None or supplier.role != ActorRole.SUPPLIER.value:
            raise ActorNotFoundError(str(supplier_id))
        self.publish_after_commit(
            VENDORS_CHANNEL,
            EventName.NEW_SUPPLIER,
            {
                "supplier_id": str(supplier.id),
                "name": supplier.name,
                "city": supplier.city,
                "state": supplier.state,
                "trust_score": supplier.trust_score,
            },
        )

    def _require_party(self, order_id: UUID, actor_id: UUID, action: str) -> None:
        parties = self._session.execute(
            select(Order.vendor_id, Order.supplier_id).where(Order.id == order_id)
        ).one_or_none()
        if parties is None:
            raise OrderNotFoundError(str(order_id))
        if actor_id not in (parties.vendor_id, parties.supplier_id):
            raise UnauthorizedError(str(actor_id), "order", str(order_id), action)


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    """Stringify UUID/Decimal/datetime values so the row stores plain JSON."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            out[key] = _jsonable(value)
        elif value is None or isinstance(value, (str, int, float, bool)):
            out[key] = value
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = str(value)
    return out

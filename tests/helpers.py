"""Shared helpers for the sourcing kernel tests."""

import time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.domain.dtos import DeliveryDetails, GatewayCharge, OrderItemRequest
from sourcing_kernel.models.product import Product


class ScriptedGateway:
    """
    Payment gateway that replays a script of outcomes.

    Each entry is "ok", "slow" (sleeps past short timeouts, then succeeds)
    or an exception instance to raise.  Once the script is exhausted every
    charge succeeds.
    """

    def __init__(self, *outcomes, delay: float = 0.5):
        self._outcomes = list(outcomes)
        self._delay = delay
        self.calls: list[dict] = []

    def script(self, *outcomes) -> None:
        self._outcomes.extend(outcomes)

    def charge(self, *, payment_id, order_id, amount, method) -> GatewayCharge:
        self.calls.append(
            {"payment_id": payment_id, "order_id": order_id, "amount": amount, "method": method}
        )
        outcome = self._outcomes.pop(0) if self._outcomes else "ok"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "slow":
            time.sleep(self._delay)
        return GatewayCharge(transaction_id=f"TXN-{len(self.calls):04d}-{str(payment_id)[:8]}")


DELIVERY = DeliveryDetails(
    address="Stall 14, Crawford Market, Mumbai",
    city="Mumbai",
    pincode="400001",
)


def line(product: Product, quantity: int, unit_price=None) -> OrderItemRequest:
    """One order line at the product's list price unless overridden."""
    price = product.price_per_unit if unit_price is None else Decimal(str(unit_price))
    return OrderItemRequest(product_id=product.id, quantity=quantity, unit_price=price)


def stock_of(session: Session, product_id: UUID) -> int:
    """Stored stock level, bypassing the identity map."""
    return session.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    ).scalar_one()


def events_for(transport, event: str, channel: str | None = None) -> list:
    return transport.published(channel=channel, event=event)

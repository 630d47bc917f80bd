"""ORM models for the sourcing kernel."""

from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.contract import Contract
from sourcing_kernel.models.notification import ChatMessage, Notification
from sourcing_kernel.models.order import Order, OrderItem
from sourcing_kernel.models.payment import Payment
from sourcing_kernel.models.product import Product
from sourcing_kernel.models.reputation import SupplierRating, TrustScoreSnapshot
from sourcing_kernel.models.sequence import SequenceCounter

__all__ = [
    "Actor",
    "ChatMessage",
    "Contract",
    "Notification",
    "Order",
    "OrderItem",
    "Payment",
    "Product",
    "SequenceCounter",
    "SupplierRating",
    "TrustScoreSnapshot",
]

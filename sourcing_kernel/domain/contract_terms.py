"""
Contract document rendering.

Pure function from a ``ContractDocument`` snapshot to the terms text stored
on the contract row.  The layout is fixed: identical inputs always render
byte-identical text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sourcing_kernel.db.types import round_money
from sourcing_kernel.domain.policy import ContractPolicy


@dataclass(frozen=True)
class ContractLine:
    product_name: str
    quantity: int
    unit: str
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class ContractDocument:
    contract_number: str
    order_number: str
    issued_at: datetime
    vendor_name: str
    supplier_name: str
    lines: tuple[ContractLine, ...]
    total_amount: Decimal
    payment_terms_days: int
    delivery_address: str
    estimated_delivery_at: datetime | None = None


def _money(value: Decimal) -> str:
    return f"INR {round_money(value):,}"


def render_terms(doc: ContractDocument, policy: ContractPolicy | None = None) -> str:
    """Render the supply agreement text for ``doc``."""
    policy = policy or ContractPolicy()

    delivery = policy.delivery_clause
    if doc.estimated_delivery_at is not None:
        delivery = f"on or before {doc.estimated_delivery_at:%Y-%m-%d %H:%M} UTC"

    lines = [
        "DIGITAL SUPPLY AGREEMENT",
        f"Contract No: {doc.contract_number}",
        f"Order No: {doc.order_number}",
        f"Date of Issue: {doc.issued_at:%Y-%m-%d}",
        "",
        "1. PARTIES",
        f"   Vendor (Buyer): {doc.vendor_name}",
        f"   Supplier (Seller): {doc.supplier_name}",
        "",
        "2. GOODS",
    ]
    for idx, line in enumerate(doc.lines, start=1):
        lines.append(
            f"   {idx}. {line.product_name}: {line.quantity} {line.unit} "
            f"@ {_money(line.unit_price)} = {_money(line.total_price)}"
        )
    lines += [
        f"   Total Contract Value: {_money(doc.total_amount)}",
        "",
        "3. PAYMENT",
        f"   Payment is due within {doc.payment_terms_days} days of the order date.",
        "",
        "4. DELIVERY",
        f"   Delivery to {doc.delivery_address}, {delivery}.",
        "",
        "5. QUALITY",
        f"   {policy.quality_clause}.",
        "",
        "6. CANCELLATION",
        f"   {policy.cancellation_clause}.",
        "",
        "7. DISPUTES",
        f"   {policy.dispute_clause}.",
        "",
        "This agreement becomes binding once signed by both the vendor and the supplier.",
    ]
    return "\n".join(lines)

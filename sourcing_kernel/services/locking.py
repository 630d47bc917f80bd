"""
Row-lock helpers shared by the order, contract and payment services.

Each helper issues ``SELECT ... FOR UPDATE`` with ``populate_existing`` so
the returned instance reflects the committed row, not a stale identity-map
copy.  On SQLite the lock clause is omitted and writers are serialized by
BEGIN IMMEDIATE instead (see db.engine).
"""

from __future__ import annotations

from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.base import Base
from sourcing_kernel.exceptions import (
    ContractNotFoundError,
    NotFoundError,
    OrderNotFoundError,
    PaymentNotFoundError,
)
from sourcing_kernel.models.contract import Contract
from sourcing_kernel.models.order import Order
from sourcing_kernel.models.payment import Payment

M = TypeVar("M", bound=Base)


def lock_row(
    session: Session,
    model: type[M],
    row_id: UUID,
    not_found: type[NotFoundError],
) -> M:
    row = session.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise not_found(str(row_id))
    return row


def lock_order(session: Session, order_id: UUID) -> Order:
    return lock_row(session, Order, order_id, OrderNotFoundError)


def lock_contract(session: Session, contract_id: UUID) -> Contract:
    return lock_row(session, Contract, contract_id, ContractNotFoundError)


def lock_payment(session: Session, payment_id: UUID) -> Payment:
    return lock_row(session, Payment, payment_id, PaymentNotFoundError)


def reload(session: Session, model: type[M], row_id: UUID) -> M:
    """Re-read a row after a conditional UPDATE, refreshing the identity map."""
    return session.execute(
        select(model)
        .where(model.id == row_id)
        .execution_options(populate_existing=True)
    ).scalar_one()

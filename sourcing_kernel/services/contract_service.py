"""
sourcing_kernel.services.contract_service -- supply agreements and signing.

Responsibility:
    Generates one contract per order, records each party's signature and
    flips the contract to ``signed`` once both parties have signed.

Architecture position:
    Kernel > Services.  Called by OrderWorkflow for generation and
    cancellation; called directly by the outer layer for signing.

Invariants enforced:
    - A signature flag is set by a conditional UPDATE that only matches
      while the flag is false and the contract is ``sent``.
    - ``sent -> signed`` is a second conditional UPDATE requiring both
      flags, so exactly one signer observes the flip and
      ``contract_completed`` is emitted once.
    - Signing again is a no-op; ``signed_at`` never moves.

Failure modes:
    - ContractNotFoundError for unknown ids.
    - UnauthorizedError when the signer is not that role's party.
    - InvalidContractTransitionError when the contract is cancelled,
      expired or still a draft.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.domain.contract_terms import (
    ContractDocument,
    ContractLine,
    render_terms,
)
from sourcing_kernel.domain.dtos import ContractInfo
from sourcing_kernel.domain.events import EventName
from sourcing_kernel.domain.order_lifecycle import (
    OPEN_CONTRACT_STATUSES,
    ContractStatus,
)
from sourcing_kernel.domain.policy import ContractPolicy
from sourcing_kernel.domain.trust import ActorRole
from sourcing_kernel.exceptions import (
    AlreadySignedError,
    ContractNotFoundError,
    ContractNumberExhaustedError,
    InvalidContractTransitionError,
    UnauthorizedError,
    ValidationError,
)
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.models.actor import Actor
from sourcing_kernel.models.contract import Contract
from sourcing_kernel.models.order import Order
from sourcing_kernel.models.product import Product
from sourcing_kernel.services.locking import lock_contract, reload
from sourcing_kernel.services.notification_hub import NotificationHub

logger = get_logger("services.contract")

_MAX_NUMBER_ATTEMPTS = 5


def _to_dto(row: Contract) -> ContractInfo:
    return ContractInfo(
        id=row.id,
        contract_number=row.contract_number,
        order_id=row.order_id,
        vendor_id=row.vendor_id,
        supplier_id=row.supplier_id,
        status=ContractStatus(row.status),
        terms_text=row.terms_text,
        payment_terms_days=row.payment_terms_days,
        total_amount=row.total_amount,
        vendor_signed=row.vendor_signed,
        supplier_signed=row.supplier_signed,
        vendor_signed_at=row.vendor_signed_at,
        supplier_signed_at=row.supplier_signed_at,
        signed_at=row.signed_at,
    )


class ContractService:
    def __init__(
        self,
        session: Session,
        notifications: NotificationHub,
        policy: ContractPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._notifications = notifications
        self._policy = policy or ContractPolicy()
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------------

    def generate_contract(self, order: Order) -> ContractInfo:
        """
        Render, persist and send the agreement for ``order``.

        The contract number is ``VC-<epoch ms>-<8 hex>``; a collision on the
        unique index is retried with a fresh suffix inside a savepoint.
        """
        issued_at = self._clock.now()
        contract: Contract | None = None
        for attempt in range(1, _MAX_NUMBER_ATTEMPTS + 1):
            number = self._next_number(issued_at)
            candidate = Contract(
                order_id=order.id,
                vendor_id=order.vendor_id,
                supplier_id=order.supplier_id,
                contract_number=number,
                terms_text=self._render(order, number, issued_at, order.payment_terms_days),
                payment_terms_days=order.payment_terms_days,
                total_amount=order.total_amount,
                status=ContractStatus.SENT.value,
                vendor_signed=False,
                supplier_signed=False,
                created_at=issued_at,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(candidate)
                    self._session.flush()
            except IntegrityError:
                logger.warning(
                    "contract_number_collision",
                    extra={"contract_number": number, "attempt": attempt},
                )
                continue
            contract = candidate
            break
        if contract is None:
            raise ContractNumberExhaustedError(str(order.id), _MAX_NUMBER_ATTEMPTS)

        order.contract_id = contract.id
        self._session.flush()

        with LogContext.bind(contract_id=contract.id, order_id=order.id):
            logger.info(
                "contract_generated",
                extra={"contract_number": contract.contract_number},
            )
        for party in (order.vendor_id, order.supplier_id):
            self._notifications.create(
                party,
                EventName.CONTRACT_SENT,
                "Contract Ready for Signature",
                f"Contract {contract.contract_number} for order "
                f"{order.order_number} is ready to sign.",
                {"contract_id": contract.id, "order_id": order.id},
            )
        return _to_dto(contract)

    def _next_number(self, issued_at: datetime) -> str:
        millis = int(issued_at.timestamp() * 1000)
        return f"{self._policy.number_prefix}-{millis}-{uuid.uuid4().hex[:8].upper()}"

    def _render(
        self, order: Order, number: str, issued_at: datetime, payment_terms_days: int
    ) -> str:
        names = dict(
            self._session.execute(
                select(Actor.id, Actor.name).where(
                    Actor.id.in_([order.vendor_id, order.supplier_id])
                )
            ).all()
        )
        units = dict(
            self._session.execute(
                select(Product.id, Product.unit).where(
                    Product.id.in_([item.product_id for item in order.items])
                )
            ).all()
        )
        doc = ContractDocument(
            contract_number=number,
            order_number=order.order_number,
            issued_at=issued_at,
            vendor_name=names.get(order.vendor_id, str(order.vendor_id)),
            supplier_name=names.get(order.supplier_id, str(order.supplier_id)),
            lines=tuple(
                ContractLine(
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit=units.get(item.product_id, "unit"),
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in order.items
            ),
            total_amount=order.total_amount,
            payment_terms_days=payment_terms_days,
            delivery_address=order.delivery_address,
            estimated_delivery_at=order.estimated_delivery_at,
        )
        return render_terms(doc, self._policy)

    # -----------------------------------------------------------------------
    # Signing
    # -----------------------------------------------------------------------

    def sign(self, contract_id: UUID, actor_id: UUID, role: ActorRole | str) -> ContractInfo:
        try:
            role = ActorRole(role)
        except ValueError:
            raise ValidationError(f"Unknown signing role: {role!r}", field="role") from None
        contract = lock_contract(self._session, contract_id)
        party_id = contract.vendor_id if role == ActorRole.VENDOR else contract.supplier_id
        if party_id != actor_id:
            raise UnauthorizedError(str(actor_id), "contract", str(contract_id), "sign")
        if contract.status not in (ContractStatus.SENT.value, ContractStatus.SIGNED.value):
            raise InvalidContractTransitionError(
                str(contract_id), contract.status, ContractStatus.SIGNED.value
            )

        with LogContext.bind(contract_id=contract_id, actor_id=actor_id):
            try:
                self._record_signature(contract_id, role)
            except AlreadySignedError:
                logger.info("contract_already_signed", extra={"role": role.value})
                return _to_dto(reload(self._session, Contract, contract_id))

            completed = self._complete_if_fully_signed(contract_id)
            contract = reload(self._session, Contract, contract_id)
            logger.info(
                "contract_signed",
                extra={"role": role.value, "fully_signed": completed},
            )

        if completed:
            order_number = self._session.execute(
                select(Order.order_number).where(Order.id == contract.order_id)
            ).scalar_one()
            for party in (contract.vendor_id, contract.supplier_id):
                self._notifications.create(
                    party,
                    EventName.CONTRACT_COMPLETED,
                    "Contract Signed",
                    f"Contract {contract.contract_number} for order {order_number} "
                    "has been signed by both parties.",
                    {"contract_id": contract.id, "order_id": contract.order_id},
                )
        return _to_dto(contract)

    def _record_signature(self, contract_id: UUID, role: ActorRole) -> None:
        flag = Contract.vendor_signed if role == ActorRole.VENDOR else Contract.supplier_signed
        stamp = "vendor_signed_at" if role == ActorRole.VENDOR else "supplier_signed_at"
        result = self._session.execute(
            update(Contract)
            .where(
                Contract.id == contract_id,
                flag.is_(False),
                Contract.status == ContractStatus.SENT.value,
            )
            .values({flag.key: True, stamp: self._clock.now()})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        current = self._session.execute(
            select(Contract.status, flag).where(Contract.id == contract_id)
        ).one()
        if current[1]:
            raise AlreadySignedError(str(contract_id), role.value)
        raise InvalidContractTransitionError(
            str(contract_id), current[0], ContractStatus.SIGNED.value
        )

    def _complete_if_fully_signed(self, contract_id: UUID) -> bool:
        result = self._session.execute(
            update(Contract)
            .where(
                Contract.id == contract_id,
                Contract.status == ContractStatus.SENT.value,
                Contract.vendor_signed.is_(True),
                Contract.supplier_signed.is_(True),
            )
            .values(status=ContractStatus.SIGNED.value, signed_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def get_contract(self, contract_id: UUID, actor_id: UUID | None = None) -> ContractInfo:
        row = self._session.get(Contract, contract_id, populate_existing=True)
        if row is None:
            raise ContractNotFoundError(str(contract_id))
        if actor_id is not None and actor_id not in (row.vendor_id, row.supplier_id):
            raise UnauthorizedError(str(actor_id), "contract", str(contract_id), "read")
        return _to_dto(row)

    def get_for_order(self, order_id: UUID) -> ContractInfo | None:
        row = self._session.execute(
            select(Contract)
            .where(Contract.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_dto(row) if row is not None else None

    def list_contracts(self, actor_id: UUID) -> list[ContractInfo]:
        rows = self._session.execute(
            select(Contract)
            .where(or_(Contract.vendor_id == actor_id, Contract.supplier_id == actor_id))
            .order_by(Contract.created_at.desc(), Contract.id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_dto(r) for r in rows]

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def cancel_for_order(self, order_id: UUID) -> bool:
        """Cancel the order's contract if it is still unsigned."""
        result = self._session.execute(
            update(Contract)
            .where(
                Contract.order_id == order_id,
                Contract.status.in_([s.value for s in OPEN_CONTRACT_STATUSES]),
            )
            .values(status=ContractStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        cancelled = result.rowcount == 1
        if cancelled:
            logger.info("contract_cancelled", extra={"order_id": str(order_id)})
        return cancelled

    def update_payment_terms(self, order: Order, payment_terms_days: int) -> ContractInfo | None:
        """Re-render an unsigned contract with new payment terms."""
        if payment_terms_days < 0:
            raise ValidationError(
                "payment_terms_days must not be negative", field="payment_terms_days"
            )
        row = self._session.execute(
            select(Contract)
            .where(Contract.order_id == order.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        if (
            row.status not in {s.value for s in OPEN_CONTRACT_STATUSES}
            or row.vendor_signed
            or row.supplier_signed
        ):
            logger.info(
                "contract_terms_frozen",
                extra={"contract_id": str(row.id), "status": row.status},
            )
            return _to_dto(row)

        row.payment_terms_days = payment_terms_days
        row.terms_text = self._render(
            order, row.contract_number, row.created_at, payment_terms_days
        )
        self._session.flush()
        return _to_dto(row)

    def expire_unsigned(self) -> int:
        """Expire ``sent`` contracts older than the validity window."""
        cutoff = self._clock.now() - timedelta(days=self._policy.validity_days)
        result = self._session.execute(
            update(Contract)
            .where(
                Contract.status == ContractStatus.SENT.value,
                Contract.created_at < cutoff,
            )
            .values(status=ContractStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        logger.info("contracts_expired", extra={"count": result.rowcount})
        return result.rowcount

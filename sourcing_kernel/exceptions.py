"""
Typed Exception Hierarchy for the Sourcing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Order, contract and payment flows fail in a handful of well-understood ways
(out of stock, illegal state change, wrong party, gateway down).  The API
layer above the kernel has to turn each of these into an actionable message,
so every failure is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (order id, current state, attempted state)

Example:
    try:
        workflow.advance(order_id, "delivered")
    except InvalidOrderTransitionError as e:
        api_response(
            code=e.code,
            order=e.entity_id,
            current=e.current_status,
            attempted=e.attempted_status,
        )

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SourcingKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ActorNotFoundError
    |   +-- ProductNotFoundError
    |   +-- OrderNotFoundError
    |   +-- ContractNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- UnauthorizedError
    |
    +-- InsufficientStockError
    |
    +-- InvalidTransitionError
    |   +-- InvalidOrderTransitionError
    |   +-- InvalidContractTransitionError
    |   +-- InvalidPaymentTransitionError
    |
    +-- GatewayError
    |   +-- GatewayTimeoutError
    |
    +-- ContractNumberExhaustedError
    |
    +-- AlreadySignedError
    +-- AlreadyCompletedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Bad input shape (empty items, quantity <= 0)
ACTOR_NOT_FOUND             | Unknown vendor/supplier id
PRODUCT_NOT_FOUND           | Unknown product id
ORDER_NOT_FOUND             | Unknown order id
CONTRACT_NOT_FOUND          | Unknown contract id
PAYMENT_NOT_FOUND           | Unknown payment id
NOTIFICATION_NOT_FOUND      | Unknown notification id
UNAUTHORIZED                | Actor is not a party to the order/contract
INSUFFICIENT_STOCK          | Stock reservation failed; no partial state
INVALID_ORDER_TRANSITION    | Order state machine violation
INVALID_CONTRACT_TRANSITION | Contract not in a signable state
INVALID_PAYMENT_TRANSITION  | Refund of non-completed payment, etc.
GATEWAY_ERROR               | Payment gateway declined or errored (retryable)
GATEWAY_TIMEOUT             | Payment gateway exceeded its time budget
CONTRACT_NUMBER_EXHAUSTED   | Every contract number attempt hit the unique index
ALREADY_SIGNED              | Duplicate signature (idempotent no-op)
ALREADY_COMPLETED           | Duplicate payment callback (idempotent no-op)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT DUPLICATES ARE NOT FAILURES:

    AlreadySignedError and AlreadyCompletedError are raised internally by
    the atomic update helpers and caught by the owning service.  Callers
    of ContractService.sign() and PaymentService.process_callback() never
    see them.

2. GATEWAY ERRORS ARE RETRYABLE:

    PaymentService.initiate() converts GatewayError into a failed
    PaymentResult with ``retryable=True``; it does not raise.

3. PERSISTENCE ERRORS PROPAGATE:

    SQLAlchemy errors are not wrapped.  The caller owns the transaction
    and decides retry policy.
===============================================================================
"""

from decimal import Decimal


class SourcingKernelError(Exception):
    """
    Base exception for all sourcing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SOURCING_KERNEL_ERROR"


# Input validation


class ValidationError(SourcingKernelError):
    """Input failed shape or business-rule validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lookups


class NotFoundError(SourcingKernelError):
    """Base exception for unknown entity ids."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ActorNotFoundError(NotFoundError):
    code: str = "ACTOR_NOT_FOUND"
    entity_type: str = "Actor"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type: str = "Product"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity_type: str = "Order"


class ContractNotFoundError(NotFoundError):
    code: str = "CONTRACT_NOT_FOUND"
    entity_type: str = "Contract"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity_type: str = "Payment"


class NotificationNotFoundError(NotFoundError):
    code: str = "NOTIFICATION_NOT_FOUND"
    entity_type: str = "Notification"


# Authorization


class UnauthorizedError(SourcingKernelError):
    """Actor is not the party allowed to perform the operation."""

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
    ):
        self.actor_id = actor_id
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        super().__init__(
            f"Actor {actor_id} may not {action} {entity_type} {entity_id}"
        )


# Inventory


class InsufficientStockError(SourcingKernelError):
    """
    Stock reservation failed for a product.

    The whole order is aborted; every decrement made earlier in the same
    call has been rolled back.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# State machines


class InvalidTransitionError(SourcingKernelError):
    """Base exception for state machine violations."""

    code: str = "INVALID_TRANSITION"
    entity_type: str = "entity"

    def __init__(self, entity_id: str, current_status: str, attempted_status: str):
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            f"Invalid {self.entity_type} transition for {entity_id}: "
            f"{current_status} -> {attempted_status}"
        )


class InvalidOrderTransitionError(InvalidTransitionError):
    code: str = "INVALID_ORDER_TRANSITION"
    entity_type: str = "order"


class InvalidContractTransitionError(InvalidTransitionError):
    code: str = "INVALID_CONTRACT_TRANSITION"
    entity_type: str = "contract"


class InvalidPaymentTransitionError(InvalidTransitionError):
    code: str = "INVALID_PAYMENT_TRANSITION"
    entity_type: str = "payment"


# Payment gateway


class GatewayError(SourcingKernelError):
    """
    The external payment gateway declined or failed the charge.

    Transient: the caller may retry with a fresh initiate() call.
    """

    code: str = "GATEWAY_ERROR"
    retryable: bool = True

    def __init__(self, reason: str, order_id: str | None = None):
        self.reason = reason
        self.order_id = order_id
        super().__init__(f"Payment gateway error: {reason}")


class GatewayTimeoutError(GatewayError):
    """The gateway call exceeded its time budget."""

    code: str = "GATEWAY_TIMEOUT"

    def __init__(self, timeout_seconds: float, order_id: str | None = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"no response within {timeout_seconds}s", order_id=order_id
        )


# Identifier allocation


class ContractNumberExhaustedError(SourcingKernelError):
    """No free contract number was found within the retry budget."""

    code: str = "CONTRACT_NUMBER_EXHAUSTED"

    def __init__(self, order_id: str, attempts: int):
        self.order_id = order_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a contract number for order {order_id} "
            f"after {attempts} attempts"
        )


# Idempotent duplicates


class AlreadySignedError(SourcingKernelError):
    """Party has already signed this contract (handled as a no-op)."""

    code: str = "ALREADY_SIGNED"

    def __init__(self, contract_id: str, role: str):
        self.contract_id = contract_id
        self.role = role
        super().__init__(f"Contract {contract_id} already signed by {role}")


class AlreadyCompletedError(SourcingKernelError):
    """Payment is already completed (handled as a no-op)."""

    code: str = "ALREADY_COMPLETED"

    def __init__(self, payment_id: str, amount: Decimal | None = None):
        self.payment_id = payment_id
        self.amount = amount
        super().__init__(f"Payment {payment_id} is already completed")

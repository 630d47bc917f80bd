"""
Payment gateway client interface.

``PaymentService`` talks to the outside world only through a
``PaymentGateway``.  ``SimulatedPaymentGateway`` approves a configurable
share of charges using an injected ``random.Random`` so runs are
reproducible; tests inject their own scripted gateways.

Every charge runs on a worker thread bounded by a timeout; a call that does
not finish in time surfaces as GatewayTimeoutError, never as success.
"""

from __future__ import annotations

import atexit
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from decimal import Decimal
from typing import Callable, Protocol, TypeVar, runtime_checkable
from uuid import UUID

from sourcing_kernel.domain.dtos import GatewayCharge
from sourcing_kernel.exceptions import GatewayError, GatewayTimeoutError
from sourcing_kernel.logging_config import get_logger

logger = get_logger("services.payment_gateway")

T = TypeVar("T")

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _gateway_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="payment-gateway")
        return _executor


def shutdown_gateway_executor(wait: bool = True) -> None:
    """Stop the gateway worker pool; the next charge starts a fresh one."""
    global _executor
    with _executor_lock:
        executor, _executor = _executor, None
    if executor is not None:
        executor.shutdown(wait=wait, cancel_futures=True)
        logger.debug("gateway_executor_shutdown", extra={"wait": wait})


atexit.register(shutdown_gateway_executor)


@runtime_checkable
class PaymentGateway(Protocol):
    def charge(
        self,
        *,
        payment_id: UUID,
        order_id: UUID,
        amount: Decimal,
        method: str,
    ) -> GatewayCharge:
        """Capture ``amount``; raise GatewayError on decline."""
        ...


class SimulatedPaymentGateway:
    """Stochastic stand-in for a card/UPI processor."""

    def __init__(
        self,
        success_rate: float = 0.95,
        rng: random.Random | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be within [0, 1], got {success_rate}")
        self._success_rate = success_rate
        self._rng = rng or random.Random()
        self._latency = latency_seconds

    def charge(
        self,
        *,
        payment_id: UUID,
        order_id: UUID,
        amount: Decimal,
        method: str,
    ) -> GatewayCharge:
        if self._latency:
            time.sleep(self._latency)
        if self._rng.random() >= self._success_rate:
            raise GatewayError("declined by issuer", order_id=str(order_id))
        txn = f"TXN{self._rng.getrandbits(48):012X}"
        return GatewayCharge(
            transaction_id=txn,
            raw={"payment_id": str(payment_id), "amount": str(amount), "method": method},
        )


def call_with_timeout(
    fn: Callable[[], T],
    timeout_seconds: float,
    order_id: str | None = None,
) -> T:
    """Run ``fn`` on the gateway pool; GatewayTimeoutError if it overruns."""
    future = _gateway_executor().submit(fn)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        future.cancel()
        logger.warning(
            "gateway_call_timed_out",
            extra={"order_id": order_id, "timeout_seconds": timeout_seconds},
        )
        raise GatewayTimeoutError(timeout_seconds, order_id=order_id) from None

"""
Human-facing reference generation (order numbers, payment and refund refs).

Generators are injected into services so tests can produce predictable
numbers.  Uniqueness of order numbers is finally enforced by the database
unique constraint.
"""

import secrets
import threading
from abc import ABC, abstractmethod

from pharmacy_kernel.domain.clock import Clock


class ReferenceGenerator(ABC):
    """Source of order numbers and payment/refund transaction references."""

    @abstractmethod
    def order_number(self) -> str:
        ...

    @abstractmethod
    def payment_reference(self) -> str:
        ...

    @abstractmethod
    def refund_reference(self) -> str:
        ...


class RandomReferenceGenerator(ReferenceGenerator):
    """
    Timestamp plus random suffix references.

    Formats:
        order_number      ORD-<YYYYmmddHHMMSS>-<8 hex>
        payment_reference TXN_<YYYYmmddHHMMSS>_<8 hex>
        refund_reference  REF_<YYYYmmddHHMMSS>_<8 hex>
    """

    def __init__(self, clock: Clock, order_prefix: str = "ORD"):
        self._clock = clock
        self._order_prefix = order_prefix

    def _stamp(self) -> str:
        return self._clock.now().strftime("%Y%m%d%H%M%S")

    def order_number(self) -> str:
        return f"{self._order_prefix}-{self._stamp()}-{secrets.token_hex(4).upper()}"

    def payment_reference(self) -> str:
        return f"TXN_{self._stamp()}_{secrets.token_hex(4).upper()}"

    def refund_reference(self) -> str:
        return f"REF_{self._stamp()}_{secrets.token_hex(4).upper()}"


class SequentialReferenceGenerator(ReferenceGenerator):
    """Thread-safe counter references (ORD-000001, TXN_000001, ...). For tests."""

    def __init__(self, order_prefix: str = "ORD"):
        self._order_prefix = order_prefix
        self._counter = 0
        self._lock = threading.Lock()

    def _next(self) -> int:
        with self._lock:
            self._counter += 1
            return self._counter

    def order_number(self) -> str:
        return f"{self._order_prefix}-{self._next():06d}"

    def payment_reference(self) -> str:
        return f"TXN_{self._next():06d}"

    def refund_reference(self) -> str:
        return f"REF_{self._next():06d}"

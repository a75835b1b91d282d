"""
Typed Exception Hierarchy for the Pharmacy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the order and inventory core must be able to tell "try again"
apart from "this will never succeed" without parsing message strings.  Every
error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes (not just a message string)
  4. A RETRYABLE flag (True only for transient store conflicts)

Example:
    try:
        order_service.create_order(...)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available)
    except ConcurrencyConflictError:
        schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PharmacyKernelError (base)
    |
    +-- ValidationError                 malformed input, before any transaction
    |
    +-- NotFoundError
    |   +-- CustomerNotFoundError
    |   +-- MedicineNotFoundError
    |   +-- OrderNotFoundError
    |   +-- InventoryRecordNotFoundError
    |
    +-- BusinessRuleError               deterministic, never retried
    |   +-- InsufficientStockError
    |   +-- WouldGoNegativeError
    |   +-- DuplicateInventoryRecordError
    |   +-- MedicineInactiveError
    |   +-- CustomerInactiveError
    |   +-- InvalidTransitionError
    |   +-- InvalidPaymentTransitionError
    |   +-- AmountMismatchError
    |   +-- AlreadyPaidError
    |   +-- PaymentNotAllowedError
    |   +-- RefundNotAllowedError
    |   +-- AlreadyRefundedError
    |   +-- RefundExceedsTotalError
    |
    +-- ConcurrencyError                transient, retried by the coordinator
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- SystemFailureError              opaque to callers, logged in full
        +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|------------------------------------
Validation   | VALIDATION_ERROR              | Empty items, bad quantity/amount
-------------|-------------------------------|------------------------------------
Not found    | CUSTOMER_NOT_FOUND            | Customer lookup returned nothing
             | MEDICINE_NOT_FOUND            | Catalog lookup returned nothing
             | ORDER_NOT_FOUND               | Order id does not exist
             | INVENTORY_RECORD_NOT_FOUND    | No ledger record for the medicine
-------------|-------------------------------|------------------------------------
Business     | INSUFFICIENT_STOCK            | Reservation exceeds available qty
             | WOULD_GO_NEGATIVE             | Adjustment would drop below zero
             | DUPLICATE_INVENTORY_RECORD    | Record already opened for medicine
             | MEDICINE_INACTIVE             | Medicine is deactivated
             | CUSTOMER_INACTIVE             | Customer is deactivated
             | INVALID_TRANSITION            | Order status edge not allowed
             | INVALID_PAYMENT_TRANSITION    | Payment status edge not allowed
             | AMOUNT_MISMATCH               | Payment != order total
             | ALREADY_PAID                  | Payment recorded twice
             | PAYMENT_NOT_ALLOWED           | Paying a cancelled order
             | REFUND_NOT_ALLOWED            | Not DELIVERED + COMPLETED
             | ALREADY_REFUNDED              | Refund requested twice
             | REFUND_EXCEEDS_TOTAL          | Refund amount > order total
-------------|-------------------------------|------------------------------------
Concurrency  | CONCURRENCY_CONFLICT          | Retries exhausted on a conflict
-------------|-------------------------------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION        | Direct write to a guarded field
-------------|-------------------------------|------------------------------------
System       | SYSTEM_FAILURE                | Unexpected failure (details logged)
             | STORE_UNAVAILABLE             | Database unreachable
"""

from decimal import Decimal


class PharmacyKernelError(Exception):
    """
    Base exception for all pharmacy kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PHARMACY_KERNEL_ERROR"
    retryable: bool = False


# Validation


class ValidationError(PharmacyKernelError):
    """Malformed input rejected before any transaction opens."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not found


class NotFoundError(PharmacyKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class CustomerNotFoundError(NotFoundError):
    """Customer with given ID was not found."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class MedicineNotFoundError(NotFoundError):
    """Medicine with given ID was not found in the catalog."""

    code: str = "MEDICINE_NOT_FOUND"

    def __init__(self, medicine_id: str):
        self.medicine_id = medicine_id
        super().__init__(f"Medicine not found: {medicine_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InventoryRecordNotFoundError(NotFoundError):
    """No inventory record has been opened for the medicine."""

    code: str = "INVENTORY_RECORD_NOT_FOUND"

    def __init__(self, medicine_id: str):
        self.medicine_id = medicine_id
        super().__init__(f"No inventory record for medicine: {medicine_id}")


# Business rules


class BusinessRuleError(PharmacyKernelError):
    """Base exception for deterministic rule violations. Never retried."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InsufficientStockError(BusinessRuleError):
    """Reservation requested more units than the ledger holds."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, medicine_id: str, requested: int, available: int):
        self.medicine_id = medicine_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for medicine {medicine_id}: "
            f"requested {requested}, available {available}"
        )


class WouldGoNegativeError(BusinessRuleError):
    """Adjustment would drive the ledger quantity below zero."""

    code: str = "WOULD_GO_NEGATIVE"

    def __init__(self, medicine_id: str, current: int, delta: int):
        self.medicine_id = medicine_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} would take medicine {medicine_id} "
            f"below zero (current {current})"
        )


class DuplicateInventoryRecordError(BusinessRuleError):
    """An inventory record already exists for the medicine."""

    code: str = "DUPLICATE_INVENTORY_RECORD"

    def __init__(self, medicine_id: str):
        self.medicine_id = medicine_id
        super().__init__(f"Inventory record already exists for medicine {medicine_id}")


class MedicineInactiveError(BusinessRuleError):
    """Medicine is deactivated in the catalog."""

    code: str = "MEDICINE_INACTIVE"

    def __init__(self, medicine_id: str):
        self.medicine_id = medicine_id
        super().__init__(f"Medicine is not available: {medicine_id}")


class CustomerInactiveError(BusinessRuleError):
    """Customer is deactivated and cannot place orders."""

    code: str = "CUSTOMER_INACTIVE"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer is inactive: {customer_id}")


class InvalidTransitionError(BusinessRuleError):
    """Requested order status change is not an edge of the order workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        order_id: str | None = None,
    ):
        self.current_status = current_status
        self.requested_status = requested_status
        self.order_id = order_id
        subject = f"order {order_id}" if order_id else "order"
        super().__init__(
            f"Invalid status transition for {subject}: "
            f"{current_status} -> {requested_status}"
        )


class InvalidPaymentTransitionError(BusinessRuleError):
    """Requested payment status change is not allowed."""

    code: str = "INVALID_PAYMENT_TRANSITION"

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        order_id: str | None = None,
    ):
        self.current_status = current_status
        self.requested_status = requested_status
        self.order_id = order_id
        super().__init__(
            f"Invalid payment status transition for order {order_id}: "
            f"{current_status} -> {requested_status}"
        )


class AmountMismatchError(BusinessRuleError):
    """Payment amount does not equal the order total."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(self, order_id: str, expected: Decimal, received: Decimal):
        self.order_id = order_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Payment amount {received} does not match order {order_id} "
            f"total {expected}"
        )


class AlreadyPaidError(BusinessRuleError):
    """Payment has already been recorded for the order."""

    code: str = "ALREADY_PAID"

    def __init__(self, order_id: str, payment_status: str):
        self.order_id = order_id
        self.payment_status = payment_status
        super().__init__(
            f"Payment already processed for order {order_id} "
            f"(payment status {payment_status})"
        )


class PaymentNotAllowedError(BusinessRuleError):
    """Order is in a status that no longer accepts payment."""

    code: str = "PAYMENT_NOT_ALLOWED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} cannot accept payment in status {status}")


class RefundNotAllowedError(BusinessRuleError):
    """Refund requires a delivered order with a completed payment."""

    code: str = "REFUND_NOT_ALLOWED"

    def __init__(self, order_id: str, status: str, payment_status: str):
        self.order_id = order_id
        self.status = status
        self.payment_status = payment_status
        super().__init__(
            f"Order {order_id} cannot be refunded "
            f"(status {status}, payment status {payment_status})"
        )


class AlreadyRefundedError(BusinessRuleError):
    """Refund has already been issued for the order."""

    code: str = "ALREADY_REFUNDED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been refunded")


class RefundExceedsTotalError(BusinessRuleError):
    """Refund amount is larger than the order total."""

    code: str = "REFUND_EXCEEDS_TOTAL"

    def __init__(self, order_id: str, amount: Decimal, total: Decimal):
        self.order_id = order_id
        self.amount = amount
        self.total = total
        super().__init__(
            f"Refund amount {amount} exceeds order {order_id} total {total}"
        )


# Concurrency


class ConcurrencyError(PharmacyKernelError):
    """Base exception for transient, retry-eligible failures."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrencyConflictError(ConcurrencyError):
    """Store-detected conflict persisted after every retry attempt."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Operation {operation} hit a concurrent modification conflict "
            f"after {attempts} attempt(s); try again"
        )


# Immutability


class ImmutabilityError(PharmacyKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete a guarded record or field.

    AuditRecord and OrderItem are immutable after creation; Order fields
    other than status, payment status and notes are frozen; inventory
    quantity changes only through the ledger.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# System


class SystemFailureError(PharmacyKernelError):
    """
    Unexpected failure surfaced to callers without internals.

    The full cause is logged where it is raised and kept on ``__cause__``.
    """

    code: str = "SYSTEM_FAILURE"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation {operation} failed due to an internal error")


class StoreUnavailableError(SystemFailureError):
    """The backing store could not be reached."""

    code: str = "STORE_UNAVAILABLE"

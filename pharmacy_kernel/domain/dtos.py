"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    caller inputs (ActorContext, OrderLineRequest, ShippingInfo), collaborator
    views (MedicineInfo, CustomerInfo), and results (OrderInfo, LedgerStatus,
    LedgerMovement, PaymentReceipt, RefundReceipt).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  Services convert ORM rows into these DTOs
    before returning; ORM entities never leave a unit of work.

Invariants enforced:
    - Every public service method returns a DTO, never an ORM entity.
    - Monetary fields are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pharmacy_kernel.domain.statuses import (
    MovementType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StockStatus,
)


@dataclass(frozen=True)
class ActorContext:
    """
    Who is performing a mutation.

    Every mutating operation takes one explicitly; the kernel never falls
    back to an implicit "system" actor.
    """

    actor_id: UUID
    correlation_id: str | None = None


@dataclass(frozen=True)
class OrderLineRequest:
    """One requested order line: medicine, whole units, agreed unit price."""

    medicine_id: UUID
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class ShippingInfo:
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "US"


@dataclass(frozen=True)
class MedicineInfo:
    """
    Catalog view of a medicine.

    tax_rate and discount_percentage are percentages in 0-100.
    """

    id: UUID
    sku: str
    name: str
    unit_price: Decimal
    tax_rate: Decimal
    discount_percentage: Decimal
    prescription_required: bool
    is_active: bool


@dataclass(frozen=True)
class CustomerInfo:
    id: UUID
    customer_code: str
    name: str
    email: str | None
    is_active: bool


@dataclass(frozen=True)
class OrderItemInfo:
    """
    A persisted order line.

    tax_amount and discount_amount are per unit; subtotal_amount is
    unit_price * quantity; total_amount is the line total.
    """

    id: UUID
    line_no: int
    medicine_id: UUID
    quantity: int
    unit_price: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    subtotal_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class OrderInfo:
    """
    Immutable snapshot of an order and its items.

    Contract: totals satisfy total_amount == subtotal + tax_amount -
    discount_amount and equal the sum of item total_amount.
    """

    id: UUID
    order_number: str
    customer_id: UUID
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    shipping: ShippingInfo
    notes: str | None
    items: tuple[OrderItemInfo, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED

    def quantity_of(self, medicine_id: UUID) -> int:
        """Total units of a medicine across all lines."""
        return sum(i.quantity for i in self.items if i.medicine_id == medicine_id)


@dataclass(frozen=True)
class LedgerStatus:
    """Current ledger position of one medicine."""

    medicine_id: UUID
    quantity: int
    reorder_point: int
    max_stock: int
    location: str
    status: StockStatus

    @property
    def needs_reorder(self) -> bool:
        return self.status != StockStatus.IN_STOCK


@dataclass(frozen=True)
class LedgerMovement:
    """
    Result of one ledger mutation.

    delta is signed (negative for reservations); old_quantity and
    new_quantity bracket the change.
    """

    medicine_id: UUID
    movement_type: MovementType
    delta: int
    old_quantity: int
    new_quantity: int
    reason: str
    reference: str | None
    status: StockStatus


@dataclass(frozen=True)
class PaymentReceipt:
    order_id: UUID
    order_number: str
    amount: Decimal
    method: PaymentMethod
    transaction_reference: str
    payment_status: PaymentStatus
    processed_at: datetime


@dataclass(frozen=True)
class RefundReceipt:
    order_id: UUID
    order_number: str
    amount: Decimal
    refund_reference: str
    reason: str
    status: OrderStatus
    payment_status: PaymentStatus
    refunded_at: datetime

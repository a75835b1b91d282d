"""
Pure domain layer.

This package contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (apart from SystemClock)

All domain objects are immutable and deterministic.
"""

from pharmacy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pharmacy_kernel.domain.dtos import (
    ActorContext,
    CustomerInfo,
    LedgerMovement,
    LedgerStatus,
    MedicineInfo,
    OrderInfo,
    OrderItemInfo,
    OrderLineRequest,
    PaymentReceipt,
    RefundReceipt,
    ShippingInfo,
)
from pharmacy_kernel.domain.identifiers import (
    RandomReferenceGenerator,
    ReferenceGenerator,
    SequentialReferenceGenerator,
)
from pharmacy_kernel.domain.order_workflow import (
    ORDER_WORKFLOW,
    VALID_TRANSITIONS,
    allowed_targets,
    can_refund,
    can_transition,
    is_terminal,
    require_transition,
)
from pharmacy_kernel.domain.pricing import OrderTotals, PricedLine, price_line, total_order
from pharmacy_kernel.domain.statuses import (
    AuditAction,
    MovementType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StockStatus,
)
from pharmacy_kernel.domain.stock import derive_stock_status

__all__ = [
    "ActorContext",
    "AuditAction",
    "Clock",
    "CustomerInfo",
    "DeterministicClock",
    "LedgerMovement",
    "LedgerStatus",
    "MedicineInfo",
    "MovementType",
    "ORDER_WORKFLOW",
    "OrderInfo",
    "OrderItemInfo",
    "OrderLineRequest",
    "OrderStatus",
    "OrderTotals",
    "PaymentMethod",
    "PaymentReceipt",
    "PaymentStatus",
    "PricedLine",
    "RandomReferenceGenerator",
    "ReferenceGenerator",
    "RefundReceipt",
    "SequentialReferenceGenerator",
    "ShippingInfo",
    "StockStatus",
    "SystemClock",
    "VALID_TRANSITIONS",
    "allowed_targets",
    "can_refund",
    "can_transition",
    "derive_stock_status",
    "is_terminal",
    "price_line",
    "require_transition",
    "total_order",
]

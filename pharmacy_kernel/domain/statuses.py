"""
Status and classification enums shared by models, domain and services.

All enums are ``str`` subclasses and are persisted as their string value,
so a value loaded from the database compares equal to the enum member.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    Contract: changes only along the edges of ORDER_WORKFLOW.
    Guarantees: CANCELLED and REFUNDED are terminal.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ON_HOLD = "ON_HOLD"


class PaymentStatus(str, Enum):
    """Payment state of an order, independent of its lifecycle status."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    INSURANCE = "INSURANCE"
    CHECK = "CHECK"


class StockStatus(str, Enum):
    """Derived stock level of an inventory record. Never stored independently."""

    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class MovementType(str, Enum):
    """Kind of ledger movement written to the audit trail."""

    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    ADJUST = "ADJUST"
    OPEN = "OPEN"


class AuditAction(str, Enum):
    """Action recorded on an AuditRecord."""

    INVENTORY_RECORD_OPENED = "INVENTORY_RECORD_OPENED"
    INVENTORY_RESERVED = "INVENTORY_RESERVED"
    INVENTORY_RELEASED = "INVENTORY_RELEASED"
    INVENTORY_ADJUSTED = "INVENTORY_ADJUSTED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ORDER_REFUNDED = "ORDER_REFUNDED"

"""
Module: pharmacy_kernel.models.order
Responsibility: ORM persistence for orders and their line items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/statuses.py.

Invariants enforced:
    - order_number is unique.
    - Totals are non-negative and total_amount == subtotal + tax_amount -
      discount_amount (written once by OrderService, then frozen).
    - After INSERT only status, payment_status, notes and tracking metadata
      may change; status changes follow the order workflow (ORM listener in
      db/immutability.py).
    - OrderItem rows are immutable after INSERT; quantity > 0.

Failure modes:
    - IntegrityError on duplicate order_number or a violated check constraint.
    - ImmutabilityViolationError on a write to a frozen field.
    - InvalidTransitionError on an illegal status change.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase, UUIDString
from pharmacy_kernel.domain.statuses import OrderStatus, PaymentMethod, PaymentStatus


class Order(TrackedBase):
    """
    A customer order.

    Guarantees:
        - status starts at PENDING and payment_status at PENDING.
        - Money columns are Numeric(38, 9); never float.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_order_number"),
        CheckConstraint("subtotal >= 0", name="ck_order_subtotal_nonneg"),
        CheckConstraint("total_amount >= 0", name="ck_order_total_nonneg"),
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        nullable=False,
    )

    # Sum of unit_price * quantity over all items
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)

    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    shipping_address: Mapped[str] = mapped_column(String(500), nullable=False)
    shipping_city: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_state: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_country: Mapped[str] = mapped_column(String(100), nullable=False)

    notes: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(TrackedBase):
    """
    One line of an order.

    Contract:
        tax_amount and discount_amount are PER UNIT.  subtotal_amount is
        unit_price * quantity; total_amount is
        (unit_price + tax_amount - discount_amount) * quantity.
    """

    __tablename__ = "order_items"

    __table_args__ = (
        UniqueConstraint("order_id", "line_no", name="uq_order_item_line"),
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_pos"),
        CheckConstraint("unit_price >= 0", name="ck_order_item_price_nonneg"),
        Index("idx_order_item_medicine", "medicine_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    medicine_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("medicines.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)

    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)

    subtotal_amount: Mapped[Decimal] = mapped_column(nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.order_id}#{self.line_no} qty={self.quantity}>"

"""
Module: pharmacy_kernel.models.customer
Responsibility: ORM persistence for customers who place orders.
Architecture position: Kernel > Models.  May import from db/base.py only.

Customer maintenance belongs to an outer collaborator; the kernel only reads
customers to admit a new order.

Failure modes:
    - IntegrityError on duplicate customer_code (uq_customer_code constraint).
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TrackedBase


class Customer(TrackedBase):
    """
    A customer that may place orders.

    Guarantees:
        - customer_code is globally unique.
        - Inactive customers are rejected at order creation.
    """

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("customer_code", name="uq_customer_code"),
    )

    # Unique business identifier
    customer_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Customer {self.customer_code}: {self.name}>"

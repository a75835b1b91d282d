"""
Module: pharmacy_kernel.models.medicine
Responsibility: ORM persistence for catalog medicines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - tax_rate and discount_percentage lie in 0-100 (check constraints).
    - unit_price >= 0 (check constraint).

Failure modes:
    - IntegrityError on duplicate sku or a violated check constraint.

Catalog maintenance belongs to an outer collaborator; the kernel reads
medicines through CatalogLookup.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TrackedBase


class Medicine(TrackedBase):
    """
    A sellable medicine.

    Guarantees:
        - sku is globally unique.
        - Pricing inputs are Decimal with percentages in 0-100.
    """

    __tablename__ = "medicines"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_medicine_sku"),
        CheckConstraint("unit_price >= 0", name="ck_medicine_price_nonneg"),
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 100", name="ck_medicine_tax_rate_range"
        ),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_medicine_discount_range",
        ),
    )

    sku: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    unit_cost: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    # Percentages 0-100
    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 4),
        nullable=False,
        default=Decimal("0"),
    )

    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(9, 4),
        nullable=False,
        default=Decimal("0"),
    )

    prescription_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Medicine {self.sku}: {self.name}>"

"""
Module: pharmacy_kernel.models.inventory
Responsibility: ORM persistence for the per-medicine stock ledger row.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/stock.py.

Invariants enforced:
    - Exactly one record per medicine (uq_inventory_medicine).
    - quantity >= 0 at every commit (ck_inventory_quantity_nonneg).  The
      ledger's conditional UPDATE is the first guard; this constraint is
      the last.
    - quantity is changed ONLY by InventoryLedger UPDATE statements; the
      ORM listener in db/immutability.py rejects attribute writes.

Failure modes:
    - IntegrityError on a second record for the same medicine, or if any
      write would leave quantity negative.
    - ImmutabilityViolationError when quantity is assigned through the ORM.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TrackedBase, UUIDString
from pharmacy_kernel.domain.statuses import StockStatus
from pharmacy_kernel.domain.stock import derive_stock_status


class InventoryRecord(TrackedBase):
    """
    Stock ledger row for one medicine.

    Contract:
        The stock status is derived from quantity and reorder_point on read;
        it is never stored, so it cannot drift from the quantity.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("medicine_id", name="uq_inventory_medicine"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonneg"),
        CheckConstraint("reorder_point >= 0", name="ck_inventory_reorder_nonneg"),
        CheckConstraint("max_stock >= 0", name="ck_inventory_max_nonneg"),
    )

    medicine_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("medicines.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    reorder_point: Mapped[int] = mapped_column(
        nullable=False,
        default=10,
    )

    max_stock: Mapped[int] = mapped_column(
        nullable=False,
        default=1000,
    )

    location: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="MAIN_STORAGE",
    )

    @property
    def status(self) -> StockStatus:
        return derive_stock_status(self.quantity, self.reorder_point)

    def __repr__(self) -> str:
        return f"<InventoryRecord medicine={self.medicine_id} qty={self.quantity}>"

"""
StockService -- administrative stock operations.

Responsibility:
    Opens inventory records, applies manual stock corrections, and reads
    ledger positions and stock audit history.  Each call is one unit of
    work through the TransactionCoordinator; the InventoryLedger does the
    actual row work.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Same as InventoryLedger: quantity >= 0, at most one record per
      medicine, every movement audited.
"""

from __future__ import annotations

from uuid import UUID

from pharmacy_kernel.config import KernelConfig
from pharmacy_kernel.domain.dtos import ActorContext, LedgerMovement, LedgerStatus
from pharmacy_kernel.exceptions import ValidationError
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.services.audit_recorder import AuditTrace
from pharmacy_kernel.services.inventory_ledger import (
    ENTITY_TYPE,
    require_delta,
    require_reason,
)
from pharmacy_kernel.services.transaction_coordinator import (
    TransactionCoordinator,
    UnitOfWork,
)

logger = get_logger("services.stock")


class StockService:
    """
    Stock administration.

    Defaults for new records (reorder point, max stock, location) come from
    the KernelConfig.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        config: KernelConfig | None = None,
    ):
        self._coordinator = coordinator
        self._config = config or KernelConfig()

    def open_inventory_record(
        self,
        medicine_id: UUID,
        quantity: int,
        actor: ActorContext,
        reorder_point: int | None = None,
        max_stock: int | None = None,
        location: str | None = None,
    ) -> LedgerStatus:
        """
        Create the inventory record for a medicine with an opening quantity.

        Raises:
            ValidationError, MedicineNotFoundError,
            DuplicateInventoryRecordError.
        """
        location = location if location is not None else self._config.default_location
        if not location.strip():
            raise ValidationError("location", "must not be blank")

        def work(uow: UnitOfWork) -> LedgerStatus:
            with LogContext.bind(medicine_id=str(medicine_id)):
                return uow.ledger.open_record(
                    medicine_id,
                    quantity=quantity,
                    reorder_point=(
                        reorder_point
                        if reorder_point is not None
                        else self._config.default_reorder_point
                    ),
                    max_stock=(
                        max_stock if max_stock is not None else self._config.default_max_stock
                    ),
                    location=location.strip(),
                )

        return self._coordinator.run(work, actor=actor, operation="open_inventory_record")

    def adjust_stock(
        self,
        medicine_id: UUID,
        delta: int,
        reason: str,
        actor: ActorContext,
        reference: str | None = None,
    ) -> LedgerMovement:
        """
        Apply a signed manual correction (stock count, damage, receipt).

        Raises:
            ValidationError: zero delta or blank reason.
            InventoryRecordNotFoundError.
            WouldGoNegativeError: the correction would take stock below zero.
        """
        require_delta(delta)
        require_reason(reason)

        def work(uow: UnitOfWork) -> LedgerMovement:
            with LogContext.bind(medicine_id=str(medicine_id)):
                return uow.ledger.adjust(medicine_id, delta, reason, reference)

        return self._coordinator.run(work, actor=actor, operation="adjust_stock")

    def get_ledger_status(self, medicine_id: UUID) -> LedgerStatus:
        return self._coordinator.read(
            lambda uow: uow.ledger.get_status(medicine_id),
            operation="get_ledger_status",
        )

    def audit_history(self, medicine_id: UUID) -> AuditTrace:
        """Stock movements of a medicine, oldest first."""
        return self._coordinator.read(
            lambda uow: uow.audit.history(ENTITY_TYPE, medicine_id),
            operation="stock_audit_history",
        )

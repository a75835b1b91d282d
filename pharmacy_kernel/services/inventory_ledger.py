"""
InventoryLedger -- the single writer of stock quantities.

Responsibility:
    Reserves, releases and adjusts the stock of a medicine, and opens the
    one inventory record each medicine has.  Every mutation is audited.

Architecture position:
    Kernel > Services -- imperative shell.  Built per unit of work by the
    TransactionCoordinator; runs inside the caller's transaction and never
    commits.

Invariants enforced:
    - quantity >= 0 after every operation.  The check and the decrement run
      in one transaction while the row is locked (``SELECT ... FOR UPDATE``
      on PostgreSQL; the BEGIN IMMEDIATE write lock on SQLite), and the
      decrement itself is a conditional ``UPDATE ... WHERE quantity >= n``.
      The ``ck_inventory_quantity_nonneg`` constraint is the last guard.
    - Quantity changes only through this class (Core UPDATE statements; the
      ORM listener rejects attribute writes).
    - A unit of work that touches several medicines locks them in ascending
      medicine-id order (``reserve_many`` / ``release_many``), so two orders
      over the same medicines cannot deadlock each other.

Failure modes:
    - InventoryRecordNotFoundError: no record for the medicine.
    - InsufficientStockError: reservation larger than available stock; no
      mutation happened.
    - WouldGoNegativeError: negative adjustment larger than the stock.
    - DuplicateInventoryRecordError: open_record on a medicine that has one.
    - ValidationError: non-positive quantity, zero delta, blank reason.

Audit relevance:
    Each movement writes one AuditRecord (entity "InventoryRecord", entity
    id = medicine id) with the old and new quantity, reason and reference.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.dtos import ActorContext, LedgerMovement, LedgerStatus
from pharmacy_kernel.domain.statuses import AuditAction, MovementType
from pharmacy_kernel.domain.stock import derive_stock_status
from pharmacy_kernel.exceptions import (
    DuplicateInventoryRecordError,
    InsufficientStockError,
    InventoryRecordNotFoundError,
    MedicineNotFoundError,
    ValidationError,
    WouldGoNegativeError,
)
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.inventory import InventoryRecord
from pharmacy_kernel.models.medicine import Medicine
from pharmacy_kernel.services.audit_recorder import AuditRecorder
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")

ENTITY_TYPE = "InventoryRecord"

_MOVEMENT_EVENTS = {
    MovementType.RESERVE: "stock_reserved",
    MovementType.RELEASE: "stock_released",
    MovementType.ADJUST: "stock_adjusted",
}


def _require_positive_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity", f"must be a positive integer, got {quantity!r}")


def require_reason(reason: str) -> None:
    if not reason or not reason.strip():
        raise ValidationError("reason", "must not be blank")


def require_delta(delta: int) -> None:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta", f"must be a non-zero integer, got {delta!r}")


class InventoryLedger(BaseService):
    """
    Stock ledger for all medicines, bound to one unit of work.

    Contract:
        Every mutating method locks the medicine's row for the rest of the
        transaction and returns a LedgerMovement DTO.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry; the TransactionCoordinator retries whole units
          of work.
    """

    def __init__(
        self,
        session: Session,
        audit: AuditRecorder,
        actor: ActorContext | None,
    ):
        super().__init__(session)
        self._audit = audit
        self._actor = actor

    def _require_actor(self) -> ActorContext:
        if self._actor is None:
            raise ValidationError("actor", "is required for ledger mutations")
        return self._actor

    # Row access

    def _lock(self, medicine_id: UUID) -> InventoryRecord:
        record = self.session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.medicine_id == medicine_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(str(medicine_id))
        return record

    def _apply(self, record: InventoryRecord, delta: int, floor: int) -> int | None:
        """
        Add ``delta`` to the locked row if its quantity is at least ``floor``.

        Returns the new quantity, or None if the guard rejected the update.
        """
        result = self.session.execute(
            update(InventoryRecord)
            .where(
                InventoryRecord.id == record.id,
                InventoryRecord.quantity >= floor,
            )
            .values(
                quantity=InventoryRecord.quantity + delta,
                updated_by_id=self._actor.actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(record)
        if result.rowcount != 1:
            return None
        return record.quantity

    def _record_movement(
        self,
        record: InventoryRecord,
        movement_type: MovementType,
        action: AuditAction,
        delta: int,
        old_quantity: int,
        new_quantity: int,
        reason: str,
        reference: str | None,
    ) -> LedgerMovement:
        self._audit.append(
            entity_type=ENTITY_TYPE,
            entity_id=record.medicine_id,
            action=action,
            actor=self._actor,
            old_value=old_quantity,
            new_value=new_quantity,
            details={
                "movement_type": movement_type,
                "delta": delta,
                "reason": reason,
                "reference": reference,
            },
        )
        status = derive_stock_status(new_quantity, record.reorder_point)
        logger.info(
            _MOVEMENT_EVENTS[movement_type],
            extra={
                "medicine_id": str(record.medicine_id),
                "delta": delta,
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "reference": reference,
                "stock_status": status.value,
            },
        )
        return LedgerMovement(
            medicine_id=record.medicine_id,
            movement_type=movement_type,
            delta=delta,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            reason=reason,
            reference=reference,
            status=status,
        )

    # Movements

    def reserve(
        self,
        medicine_id: UUID,
        quantity: int,
        reason: str,
        reference: str | None = None,
    ) -> LedgerMovement:
        """
        Decrement stock by ``quantity`` if at least that much is available.

        Postconditions:
            - On success the row holds old - quantity and stays locked until
              the unit of work ends.
            - On InsufficientStockError nothing was changed.

        Raises:
            InsufficientStockError: If available < quantity.
        """
        _require_positive_quantity(quantity)
        require_reason(reason)
        self._require_actor()

        record = self._lock(medicine_id)
        old_quantity = record.quantity
        new_quantity = None
        if old_quantity >= quantity:
            new_quantity = self._apply(record, -quantity, floor=quantity)

        if new_quantity is None:
            logger.info(
                "stock_reservation_rejected",
                extra={
                    "medicine_id": str(medicine_id),
                    "requested": quantity,
                    "available": record.quantity,
                },
            )
            raise InsufficientStockError(
                medicine_id=str(medicine_id),
                requested=quantity,
                available=record.quantity,
            )

        return self._record_movement(
            record,
            MovementType.RESERVE,
            AuditAction.INVENTORY_RESERVED,
            -quantity,
            old_quantity,
            new_quantity,
            reason,
            reference,
        )

    def release(
        self,
        medicine_id: UUID,
        quantity: int,
        reason: str,
        reference: str | None = None,
    ) -> LedgerMovement:
        """Return ``quantity`` units to stock. Always succeeds for an existing record."""
        _require_positive_quantity(quantity)
        require_reason(reason)
        self._require_actor()

        record = self._lock(medicine_id)
        old_quantity = record.quantity
        new_quantity = self._apply(record, quantity, floor=0)
        assert new_quantity is not None, "release on a locked row cannot be rejected"

        return self._record_movement(
            record,
            MovementType.RELEASE,
            AuditAction.INVENTORY_RELEASED,
            quantity,
            old_quantity,
            new_quantity,
            reason,
            reference,
        )

    def adjust(
        self,
        medicine_id: UUID,
        delta: int,
        reason: str,
        reference: str | None = None,
    ) -> LedgerMovement:
        """
        Administrative correction by a signed ``delta``.

        Raises:
            ValidationError: If delta is zero or reason is blank.
            WouldGoNegativeError: If the result would be below zero.
        """
        require_delta(delta)
        require_reason(reason)
        self._require_actor()

        record = self._lock(medicine_id)
        old_quantity = record.quantity
        new_quantity = None
        if old_quantity + delta >= 0:
            new_quantity = self._apply(record, delta, floor=max(0, -delta))

        if new_quantity is None:
            raise WouldGoNegativeError(
                medicine_id=str(medicine_id),
                current=record.quantity,
                delta=delta,
            )

        return self._record_movement(
            record,
            MovementType.ADJUST,
            AuditAction.INVENTORY_ADJUSTED,
            delta,
            old_quantity,
            new_quantity,
            reason,
            reference,
        )

    def reserve_many(
        self,
        lines: Iterable[tuple[UUID, int]],
        reason: str,
        reference: str | None = None,
    ) -> list[LedgerMovement]:
        """
        Reserve several (medicine_id, quantity) lines in ascending medicine-id
        order.  Repeated medicines are reserved line by line.

        Raises:
            InsufficientStockError: On the first line that cannot be covered.
                Earlier reservations in the same unit of work are undone by
                the caller's rollback.
        """
        ordered = sorted(lines, key=lambda line: str(line[0]))
        return [self.reserve(mid, qty, reason, reference) for mid, qty in ordered]

    def release_many(
        self,
        lines: Iterable[tuple[UUID, int]],
        reason: str,
        reference: str | None = None,
    ) -> list[LedgerMovement]:
        """Release several lines in ascending medicine-id order."""
        ordered = sorted(lines, key=lambda line: str(line[0]))
        return [self.release(mid, qty, reason, reference) for mid, qty in ordered]

    # Record lifecycle and reads

    def open_record(
        self,
        medicine_id: UUID,
        quantity: int = 0,
        reorder_point: int = 10,
        max_stock: int = 1000,
        location: str = "MAIN_STORAGE",
    ) -> LedgerStatus:
        """
        Create the inventory record for a medicine.

        Raises:
            MedicineNotFoundError: If the medicine does not exist.
            DuplicateInventoryRecordError: If a record already exists.
            ValidationError: On negative quantity or thresholds.
        """
        for name, value in (
            ("quantity", quantity),
            ("reorder_point", reorder_point),
            ("max_stock", max_stock),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(name, f"must be a non-negative integer, got {value!r}")

        actor = self._require_actor()
        if self.session.get(Medicine, medicine_id) is None:
            raise MedicineNotFoundError(str(medicine_id))

        existing = self.session.execute(
            select(InventoryRecord.id).where(InventoryRecord.medicine_id == medicine_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateInventoryRecordError(str(medicine_id))

        record = InventoryRecord(
            medicine_id=medicine_id,
            quantity=quantity,
            reorder_point=reorder_point,
            max_stock=max_stock,
            location=location,
            created_by_id=actor.actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateInventoryRecordError(str(medicine_id)) from exc

        self._audit.append(
            entity_type=ENTITY_TYPE,
            entity_id=medicine_id,
            action=AuditAction.INVENTORY_RECORD_OPENED,
            actor=actor,
            old_value=None,
            new_value=quantity,
            details={
                "movement_type": MovementType.OPEN,
                "reorder_point": reorder_point,
                "max_stock": max_stock,
                "location": location,
            },
        )
        logger.info(
            "inventory_record_opened",
            extra={"medicine_id": str(medicine_id), "quantity": quantity},
        )
        return self._to_status(record)

    def get_status(self, medicine_id: UUID) -> LedgerStatus:
        """
        Current ledger position of a medicine (no lock taken).

        Raises:
            InventoryRecordNotFoundError: If no record exists.
        """
        record = self.session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.medicine_id == medicine_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(str(medicine_id))
        return self._to_status(record)

    @staticmethod
    def _to_status(record: InventoryRecord) -> LedgerStatus:
        return LedgerStatus(
            medicine_id=record.medicine_id,
            quantity=record.quantity,
            reorder_point=record.reorder_point,
            max_stock=record.max_stock,
            location=record.location,
            status=derive_stock_status(record.quantity, record.reorder_point),
        )

"""
AuditRecorder -- append-only audit trail for stock and order changes.

Responsibility:
    Writes one AuditRecord per significant state change (ledger movement,
    order creation, status change, payment, refund) and reads back the
    history of an entity.

Architecture position:
    Kernel > Services -- imperative shell, called by InventoryLedger and
    OrderService inside the current unit of work.

Invariants enforced:
    - Append-only: AuditRecord rows are never modified or deleted (ORM
      listener on the AuditRecord model).
    - Per-entity ordering: entity_seq is the previous maximum for the same
      entity plus one.  Callers hold the entity's row lock (inventory row
      or order row) while appending, so two units of work never compute
      the same value for one entity.

Failure modes:
    - A failed audit write is rolled back to its savepoint and logged at
      ERROR with the full exception.  It never fails the primary
      transaction; append() returns None in that case.

Audit relevance:
    This IS the audit service.  Every record carries the actor, the old and
    new values, and the correlation id of the request.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import ActorContext
from pharmacy_kernel.domain.statuses import AuditAction
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.audit_record import AuditRecord
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.utils.serialization import json_safe

logger = get_logger("services.audit")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    old_value: str | None
    new_value: str | None
    details: dict[str, Any]
    correlation_id: str | None


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for an entity.

    Contains all audit records in entity_seq order.
    """

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditRecorder(BaseService):
    """
    Service for appending and reading audit records.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT hash-chain records; ordering is per entity only.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _next_entity_seq(self, entity_type: str, entity_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(AuditRecord.entity_seq)).where(
                AuditRecord.entity_type == entity_type,
                AuditRecord.entity_id == entity_id,
            )
        ).scalar_one()
        return (current or 0) + 1

    def append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor: ActorContext,
        old_value: Any = None,
        new_value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> UUID | None:
        """
        Append one audit record inside a savepoint.

        Args:
            entity_type: Type of entity ("Order", "InventoryRecord").
            entity_id: ID of the entity (the medicine id for inventory).
            action: The action being recorded.
            actor: Who performed the action.
            old_value: Value before the change (stringified).
            new_value: Value after the change (stringified).
            details: Additional context (made JSON-safe).

        Returns:
            The new record's id, or None if the write failed.
        """
        try:
            with self.session.begin_nested():
                record = AuditRecord(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    entity_seq=self._next_entity_seq(entity_type, entity_id),
                    action=action,
                    old_value=None if old_value is None else str(json_safe(old_value)),
                    new_value=None if new_value is None else str(json_safe(new_value)),
                    details=json_safe(details or {}),
                    actor_id=actor.actor_id,
                    occurred_at=self._clock.now(),
                    correlation_id=actor.correlation_id,
                )
                self.session.add(record)
                self.session.flush()
        except SQLAlchemyError:
            logger.error(
                "audit_write_failed",
                exc_info=True,
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "action": action.value,
                },
            )
            return None

        logger.debug(
            "audit_record_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "entity_seq": record.entity_seq,
            },
        )
        return record.id

    # Trace and query methods

    def history(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """
        Get the complete audit trace for an entity.

        Returns:
            AuditTrace with all records in entity_seq order.
        """
        records = self.session.execute(
            select(AuditRecord)
            .where(
                AuditRecord.entity_type == entity_type,
                AuditRecord.entity_id == entity_id,
            )
            .order_by(AuditRecord.entity_seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=r.entity_seq,
                action=AuditAction(r.action),
                occurred_at=r.occurred_at,
                actor_id=r.actor_id,
                old_value=r.old_value,
                new_value=r.new_value,
                details=r.details or {},
                correlation_id=r.correlation_id,
            )
            for r in records
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

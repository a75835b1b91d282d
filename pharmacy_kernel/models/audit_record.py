"""
Module: pharmacy_kernel.models.audit_record
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener).
    - (entity_type, entity_id, entity_seq) is unique, giving each audited
      entity a gap-free history order.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a duplicate entity_seq.  AuditRecorder writes in a
      savepoint, so this never fails the surrounding unit of work.

Audit relevance:
    Every stock movement and every order status or payment change produces
    one AuditRecord carrying the old value, the new value, and the actor.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base, UUIDString
from pharmacy_kernel.domain.statuses import AuditAction


class AuditRecord(Base):
    """
    One audited change.

    Contract:
        Rows are sacred -- append-only, never updated or deleted.
    """

    __tablename__ = "audit_records"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "entity_seq", name="uq_audit_entity_seq"
        ),
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Type of entity being audited (e.g., "Order", "InventoryRecord")
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # For InventoryRecord this is the medicine id
    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Position in this entity's history, starting at 1
    entity_seq: Mapped[int] = mapped_column(nullable=False)

    action: Mapped[AuditAction] = mapped_column(
        String(50),
        nullable=False,
    )

    old_value: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    new_value: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    correlation_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AuditRecord {self.action} on {self.entity_type}:{self.entity_id}>"

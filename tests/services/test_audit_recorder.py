"""
AuditRecorder tests: per-entity ordering, JSON-safe details, append-only
records, and failure isolation.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from pharmacy_kernel.domain.statuses import AuditAction, OrderStatus
from pharmacy_kernel.exceptions import ImmutabilityViolationError, SystemFailureError
from pharmacy_kernel.models.audit_record import AuditRecord
from pharmacy_kernel.services.audit_recorder import AuditRecorder


class TestAppend:

    def test_sequence_is_per_entity(self, coordinator, actor):
        first, second = uuid4(), uuid4()

        def work(uow):
            for entity in (first, second, first):
                uow.audit.append("Order", entity, AuditAction.ORDER_STATUS_CHANGED, actor)

        coordinator.run(work, actor=actor, operation="audit")

        first_trace = coordinator.read(
            lambda uow: uow.audit.history("Order", first), operation="history"
        )
        second_trace = coordinator.read(
            lambda uow: uow.audit.history("Order", second), operation="history"
        )
        assert [e.seq for e in first_trace.entries] == [1, 2]
        assert [e.seq for e in second_trace.entries] == [1]

    def test_values_and_details_made_json_safe(self, coordinator, actor):
        entity = uuid4()
        ref = uuid4()

        def work(uow):
            return uow.audit.append(
                "Order",
                entity,
                AuditAction.PAYMENT_RECORDED,
                actor,
                old_value=OrderStatus.PENDING,
                new_value=Decimal("12.50"),
                details={"ref": ref, "amount": Decimal("12.50"), "lines": (1, 2)},
            )

        record_id = coordinator.run(work, actor=actor, operation="audit")
        trace = coordinator.read(lambda uow: uow.audit.history("Order", entity), operation="history")

        assert record_id is not None
        entry = trace.entries[0]
        assert entry.old_value == "PENDING"
        assert entry.new_value == "12.50"
        assert entry.details == {"ref": str(ref), "amount": "12.50", "lines": [1, 2]}
        assert entry.actor_id == actor.actor_id

    def test_empty_history(self, coordinator):
        trace = coordinator.read(
            lambda uow: uow.audit.history("Order", uuid4()), operation="history"
        )
        assert trace.is_empty
        assert trace.last_action is None


class TestFailureIsolation:

    def test_unserializable_details_are_a_programming_error(
        self, coordinator, actor, create_medicine, stock_service
    ):
        mid = create_medicine(stock=10)

        def work(uow):
            uow.ledger.reserve(mid, 1, "order creation")
            return uow.audit.append(
                "Order", uuid4(), AuditAction.ORDER_CREATED, actor, details={"bad": object()}
            )

        with pytest.raises(SystemFailureError) as exc_info:
            coordinator.run(work, actor=actor, operation="audit")
        assert isinstance(exc_info.value.__cause__, TypeError)
        assert stock_service.get_ledger_status(mid).quantity == 10

    def test_store_error_in_audit_is_logged_and_absorbed(
        self, coordinator, actor, create_medicine, stock_service, captured_logs, monkeypatch
    ):
        from sqlalchemy.exc import OperationalError

        mid = create_medicine(stock=10)

        def broken_seq(self, entity_type, entity_id):
            raise OperationalError("SELECT max(entity_seq)", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AuditRecorder, "_next_entity_seq", broken_seq)

        def work(uow):
            uow.ledger.reserve(mid, 3, "order creation")
            return "ok"

        assert coordinator.run(work, actor=actor, operation="audit") == "ok"
        assert stock_service.get_ledger_status(mid).quantity == 7
        failures = [r for r in captured_logs() if r["message"] == "audit_write_failed"]
        assert len(failures) == 1
        assert failures[0]["entity_type"] == "InventoryRecord"
        assert failures[0]["exc_type"] == "OperationalError"


class TestAppendOnly:

    def _one_record(self, coordinator, actor):
        entity = uuid4()
        coordinator.run(
            lambda uow: uow.audit.append("Order", entity, AuditAction.ORDER_CREATED, actor),
            actor=actor,
            operation="audit",
        )
        return entity

    def test_update_blocked(self, coordinator, actor, session_factory):
        entity = self._one_record(coordinator, actor)
        with session_factory() as s:
            record = s.execute(
                select(AuditRecord).where(AuditRecord.entity_id == entity)
            ).scalar_one()
            record.new_value = "tampered"
            with pytest.raises(ImmutabilityViolationError):
                s.flush()
            s.rollback()

    def test_delete_blocked(self, coordinator, actor, session_factory):
        entity = self._one_record(coordinator, actor)
        with session_factory() as s:
            record = s.execute(
                select(AuditRecord).where(AuditRecord.entity_id == entity)
            ).scalar_one()
            s.delete(record)
            with pytest.raises(ImmutabilityViolationError):
                s.flush()
            s.rollback()

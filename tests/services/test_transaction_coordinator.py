"""
TransactionCoordinator tests: commit, rollback, retry classification and
backoff.
"""

import random
import sqlite3
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from pharmacy_kernel.config import RetryPolicy
from pharmacy_kernel.domain.clock import DeterministicClock
from pharmacy_kernel.domain.dtos import ActorContext
from pharmacy_kernel.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    StoreUnavailableError,
    SystemFailureError,
    ValidationError,
)
from pharmacy_kernel.models.inventory import InventoryRecord
from pharmacy_kernel.services.transaction_coordinator import (
    TransactionCoordinator,
    is_transient,
)


class _PgError(Exception):
    """Stand-in for a psycopg2 error carrying a SQLSTATE."""

    def __init__(self, pgcode, message="error"):
        super().__init__(message)
        self.pgcode = pgcode


def _locked():
    return OperationalError("UPDATE inventory_records", {}, sqlite3.OperationalError("database is locked"))


def _pg(code):
    return OperationalError("UPDATE inventory_records", {}, _PgError(code))


class TestIsTransient:

    @pytest.mark.parametrize("code", ["40001", "40P01", "55P03", "57014"])
    def test_transient_sqlstates(self, code):
        assert is_transient(_pg(code))

    def test_sqlite_busy(self):
        assert is_transient(_locked())

    def test_unique_violation_is_not_transient(self):
        exc = IntegrityError("INSERT", {}, _PgError("23505", "duplicate key"))
        assert not is_transient(exc)

    def test_plain_exception_is_not_transient(self):
        assert not is_transient(RuntimeError("database is locked"))


class TestRunCommitsAndRollsBack:

    def test_actor_required(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.run(lambda uow: None, actor=None, operation="noop")

    def test_business_error_rolls_back_earlier_writes(
        self, coordinator, actor, create_medicine, stock_service
    ):
        a = create_medicine(stock=10)
        b = create_medicine(stock=0)

        def work(uow):
            uow.ledger.reserve(a, 4, "order creation")
            uow.ledger.reserve(b, 1, "order creation")

        with pytest.raises(InsufficientStockError):
            coordinator.run(work, actor=actor, operation="two_lines")

        assert stock_service.get_ledger_status(a).quantity == 10

    def test_business_error_not_retried(self, coordinator, actor, sleeps):
        calls = []

        def work(uow):
            calls.append(1)
            raise InsufficientStockError("m", 2, 1)

        with pytest.raises(InsufficientStockError):
            coordinator.run(work, actor=actor, operation="reject")
        assert len(calls) == 1
        assert sleeps == []

    def test_returns_work_result(self, coordinator, actor):
        assert coordinator.run(lambda uow: uow.actor.actor_id, actor=actor, operation="id") == actor.actor_id

    def test_each_attempt_gets_fresh_unit_of_work(self, coordinator, actor):
        seen = []

        def work(uow):
            seen.append(uow.id)
            if len(seen) == 1:
                raise _locked()
            return uow.id

        assert coordinator.run(work, actor=actor, operation="retry_once") == seen[1]
        assert seen[0] != seen[1]


class TestRetry:

    def test_transient_conflict_retried_then_succeeds(self, coordinator, actor, sleeps, captured_logs):
        attempts = []

        def work(uow):
            attempts.append(1)
            if len(attempts) < 3:
                raise _pg("40001")
            return "done"

        assert coordinator.run(work, actor=actor, operation="flaky") == "done"
        assert len(attempts) == 3
        assert len(sleeps) == 2
        retries = [r for r in captured_logs() if r["message"] == "unit_of_work_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]
        assert retries[0]["sqlstate"] == "40001"

    def test_exhausted_retries_raise_concurrency_conflict(self, coordinator, actor, kernel_config):
        def work(uow):
            raise _locked()

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            coordinator.run(work, actor=actor, operation="always_busy")

        err = exc_info.value
        assert err.retryable is True
        assert err.attempts == kernel_config.retry.max_attempts
        assert err.operation == "always_busy"
        assert isinstance(err.__cause__, OperationalError)

    def test_backoff_grows_and_is_capped(self, session_factory):
        coordinator = TransactionCoordinator(
            session_factory,
            clock=DeterministicClock(),
            retry_policy=RetryPolicy(max_attempts=10, base_delay_s=0.1, max_delay_s=0.5, jitter=0.0),
        )
        assert [coordinator.backoff_delay(n) for n in (1, 2, 3, 4, 5)] == [
            0.1, 0.2, 0.4, 0.5, 0.5,
        ]

    def test_jitter_shrinks_delay_within_bounds(self, session_factory):
        coordinator = TransactionCoordinator(
            session_factory,
            retry_policy=RetryPolicy(base_delay_s=1.0, max_delay_s=1.0, jitter=0.5),
            rng=random.Random(7),
        )
        for _ in range(20):
            assert 0.5 <= coordinator.backoff_delay(1) <= 1.0


class TestUnexpectedFailures:

    def test_connection_loss_is_store_unavailable(self, coordinator, actor):
        def work(uow):
            raise OperationalError("SELECT 1", {}, Exception("could not connect to server"))

        with pytest.raises(StoreUnavailableError):
            coordinator.run(work, actor=actor, operation="offline")

    def test_programming_error_is_opaque_system_failure(self, coordinator, actor, captured_logs):
        def work(uow):
            raise KeyError("secret internal detail")

        with pytest.raises(SystemFailureError) as exc_info:
            coordinator.run(work, actor=actor, operation="buggy")

        assert "secret internal detail" not in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, KeyError)
        failed = [r for r in captured_logs() if r["message"] == "unit_of_work_failed"]
        assert failed and failed[0]["exc_type"] == "KeyError"


class TestLogContext:

    def test_unit_of_work_fields_bound(self, coordinator, captured_logs):
        actor = ActorContext(actor_id=uuid4(), correlation_id="req-42")
        coordinator.run(lambda uow: None, actor=actor, operation="noop")

        started = [r for r in captured_logs() if r["message"] == "unit_of_work_started"][0]
        assert started["operation"] == "noop"
        assert started["actor_id"] == str(actor.actor_id)
        assert started["correlation_id"] == "req-42"
        assert "unit_of_work_id" in started

    def test_read_rolls_back(self, coordinator, create_medicine, stock_service):
        mid = create_medicine(stock=5)

        def write_inside_read(uow):
            uow.session.execute(
                update(InventoryRecord)
                .where(InventoryRecord.medicine_id == mid)
                .values(quantity=InventoryRecord.quantity + 5)
            )

        coordinator.read(write_inside_read, operation="read_only")
        assert stock_service.get_ledger_status(mid).quantity == 5

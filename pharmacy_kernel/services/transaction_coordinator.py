"""
TransactionCoordinator -- unit-of-work boundary with transient-conflict retry.

Responsibility:
    Runs a callable inside one database transaction with a fresh session,
    commits on success, rolls back on any failure, and re-runs the whole
    callable when the store reports a transient conflict (serialization
    failure, deadlock, lock or statement timeout, SQLite busy).

Architecture position:
    Kernel > Services -- the ONLY place in the kernel that calls
    ``session.commit()`` or ``session.rollback()``.  OrderService and
    StockService express every operation as a function of a UnitOfWork.

Invariants enforced:
    - All-or-nothing: either every write of the unit of work commits, or
      none does.
    - Business errors (PharmacyKernelError) are never retried.
    - Transient store conflicts are retried at most ``max_attempts`` times
      with exponential backoff and jitter, then surface as
      ConcurrencyConflictError (retryable) -- distinct from business errors.

Failure modes:
    - ConcurrencyConflictError: retries exhausted.
    - StoreUnavailableError: the database could not be reached.
    - SystemFailureError: any other unexpected failure.  The message is
      opaque; the original exception is logged with its traceback and kept
      on ``__cause__``.

Audit relevance:
    Every attempt logs the unit-of-work id, operation and actor, so retries
    and rollbacks of a request can be traced end to end.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pharmacy_kernel.config import RetryPolicy
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import ActorContext
from pharmacy_kernel.exceptions import (
    ConcurrencyConflictError,
    PharmacyKernelError,
    StoreUnavailableError,
    SystemFailureError,
    ValidationError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.services.audit_recorder import AuditRecorder
from pharmacy_kernel.services.inventory_ledger import InventoryLedger

logger = get_logger("services.transaction_coordinator")

T = TypeVar("T")

# SQLSTATEs: serialization_failure, deadlock_detected, lock_not_available,
# query_canceled (statement_timeout)
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})

_TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize",
)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_transient(exc: BaseException) -> bool:
    """True if the store error is a conflict that a fresh attempt may clear."""
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in TRANSIENT_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _TRANSIENT_MESSAGES)



@dataclass(frozen=True)
class UnitOfWork:
    """
    Everything a unit of work needs, bound to one session and one actor.

    Contract:
        Valid only inside the callable passed to TransactionCoordinator.run()
        or read().  ORM objects loaded through ``session`` must not escape it.
        ``actor`` is None only for read-only units of work.
    """

    id: UUID
    session: Session
    actor: ActorContext | None
    audit: AuditRecorder
    ledger: InventoryLedger


class TransactionCoordinator:
    """
    Opens, commits, rolls back and retries units of work.

    Contract:
        ``run(work, actor=..., operation=...)`` calls ``work(uow)`` with a
        fresh UnitOfWork per attempt and returns its result after commit.
        ``work`` must be safe to re-run from scratch.  ``read()`` does the
        same without an actor and always rolls back.

    Non-goals:
        - Does NOT retry business errors.
        - Does NOT span more than one database.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based)."""
        base = min(self._retry.max_delay_s, self._retry.base_delay_s * (2 ** (attempt - 1)))
        return base * (1 - self._retry.jitter * self._rng.random())

    def _build(self, session: Session, actor: ActorContext | None) -> UnitOfWork:
        audit = AuditRecorder(session, self._clock)
        return UnitOfWork(
            id=uuid4(),
            session=session,
            actor=actor,
            audit=audit,
            ledger=InventoryLedger(session, audit, actor),
        )

    def run(
        self,
        work: Callable[[UnitOfWork], T],
        *,
        actor: ActorContext,
        operation: str,
    ) -> T:
        """
        Execute ``work`` atomically, retrying transient conflicts.

        Args:
            work: Function of a UnitOfWork; may be called more than once.
            actor: Who is performing the operation.
            operation: Short name for logs and errors ("create_order").

        Returns:
            Whatever ``work`` returned, after a successful commit.

        Raises:
            PharmacyKernelError: Business and validation errors raised by
                ``work``, unchanged.
            ConcurrencyConflictError: Transient conflicts outlasted
                ``max_attempts``.
            StoreUnavailableError / SystemFailureError: Unexpected failures.
        """
        if actor is None:
            raise ValidationError("actor", "is required for mutating operations")
        return self._execute(work, actor, operation, commit=True)

    def read(self, work: Callable[[UnitOfWork], T], *, operation: str) -> T:
        """Execute a read-only ``work``; the transaction is always rolled back."""
        return self._execute(work, None, operation, commit=False)

    def _execute(
        self,
        work: Callable[[UnitOfWork], T],
        actor: ActorContext | None,
        operation: str,
        commit: bool,
    ) -> T:
        max_attempts = self._retry.max_attempts
        attempt = 0
        while True:
            attempt += 1
            session = self._session_factory()
            uow = self._build(session, actor)
            with LogContext.bind(
                unit_of_work_id=str(uow.id),
                operation=operation,
                actor_id=None if actor is None else str(actor.actor_id),
                correlation_id=None if actor is None else actor.correlation_id,
            ):
                try:
                    logger.debug("unit_of_work_started", extra={"attempt": attempt})
                    result = work(uow)
                    if commit:
                        session.commit()
                        logger.debug("unit_of_work_committed", extra={"attempt": attempt})
                    else:
                        session.rollback()
                    return result
                except PharmacyKernelError as exc:
                    session.rollback()
                    logger.info(
                        "unit_of_work_rejected",
                        extra={"attempt": attempt, "error_code": exc.code},
                    )
                    raise
                except DBAPIError as exc:
                    session.rollback()
                    if is_transient(exc):
                        if attempt >= max_attempts:
                            logger.warning(
                                "unit_of_work_conflict_exhausted",
                                extra={"attempts": attempt, "sqlstate": _sqlstate(exc)},
                            )
                            raise ConcurrencyConflictError(operation, attempt) from exc
                        delay = self.backoff_delay(attempt)
                        logger.warning(
                            "unit_of_work_retry",
                            extra={
                                "attempt": attempt,
                                "max_attempts": max_attempts,
                                "delay_s": round(delay, 4),
                                "sqlstate": _sqlstate(exc),
                            },
                        )
                        self._sleep(delay)
                        continue
                    if exc.connection_invalidated or (
                        isinstance(exc, OperationalError) and _sqlstate(exc) is None
                    ):
                        logger.error("store_unavailable", exc_info=True)
                        raise StoreUnavailableError(operation) from exc
                    logger.error("unit_of_work_failed", exc_info=True)
                    raise SystemFailureError(operation) from exc
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error("unit_of_work_failed", exc_info=True)
                    raise SystemFailureError(operation) from exc
                except Exception as exc:
                    session.rollback()
                    logger.error("unit_of_work_failed", exc_info=True)
                    raise SystemFailureError(operation) from exc
                finally:
                    session.close()

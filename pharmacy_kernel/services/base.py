"""
BaseService -- abstract base for session-scoped kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for the
    services that work inside a unit of work (ledger, audit recorder,
    lookups).  They receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: these services flush within the caller's
    transaction and never commit or roll back themselves.  The
    TransactionCoordinator owns commit/rollback.

Failure modes:
    - If a subclass calls ``session.commit()``, a multi-step unit of work
      (reserve three lines, persist the order) is no longer atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for session-scoped services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

"""
Kernel wiring (``pharmacy_kernel.bootstrap``).

Responsibility
--------------
Builds one fully wired kernel from a KernelConfig: engine, session factory,
transaction coordinator, and the order and stock services.  Nothing is
created at import time; every collaborator (clock, reference generator,
sleep function) can be injected.

Architecture position
---------------------
**Composition root** -- the only module that knows every concrete class.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pharmacy_kernel.config import KernelConfig
from pharmacy_kernel.db.engine import (
    create_engine_from_config,
    create_session_factory,
    create_tables,
)
from pharmacy_kernel.db.immutability import register_immutability_listeners
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.identifiers import (
    RandomReferenceGenerator,
    ReferenceGenerator,
)
from pharmacy_kernel.logging_config import configure_logging, get_logger
from pharmacy_kernel.services.order_service import OrderService
from pharmacy_kernel.services.stock_service import StockService
from pharmacy_kernel.services.transaction_coordinator import TransactionCoordinator

logger = get_logger("bootstrap")


@dataclass(frozen=True)
class KernelServices:
    """Handles to a wired kernel. ``engine.dispose()`` shuts it down."""

    config: KernelConfig
    engine: Engine
    session_factory: sessionmaker[Session]
    coordinator: TransactionCoordinator
    orders: OrderService
    stock: StockService
    clock: Clock
    references: ReferenceGenerator

    def dispose(self) -> None:
        self.engine.dispose()


def build_kernel(
    config: KernelConfig,
    *,
    clock: Clock | None = None,
    references: ReferenceGenerator | None = None,
    engine: Engine | None = None,
    sleep: Callable[[float], None] = time.sleep,
    create_schema: bool = False,
) -> KernelServices:
    """
    Wire a kernel instance.

    Args:
        config: Validated settings.
        clock: Time source; SystemClock by default.
        references: Order number / transaction reference source.
        engine: Pre-built engine (tests share one); built from config if None.
        sleep: Backoff sleep used by the coordinator.
        create_schema: Create missing tables on the engine.

    Returns:
        KernelServices holding every wired component.
    """
    configure_logging(level=config.log_level.upper())
    register_immutability_listeners()

    clock = clock or SystemClock()
    references = references or RandomReferenceGenerator(
        clock, order_prefix=config.order_number_prefix
    )
    engine = engine or create_engine_from_config(config)
    if create_schema:
        create_tables(engine)

    session_factory = create_session_factory(engine)
    coordinator = TransactionCoordinator(
        session_factory,
        clock=clock,
        retry_policy=config.retry,
        sleep=sleep,
    )
    services = KernelServices(
        config=config,
        engine=engine,
        session_factory=session_factory,
        coordinator=coordinator,
        orders=OrderService(coordinator, clock, references),
        stock=StockService(coordinator, config),
        clock=clock,
        references=references,
    )
    logger.info(
        "kernel_built",
        extra={
            "dialect": engine.dialect.name,
            "max_attempts": config.retry.max_attempts,
            "isolation_level": config.isolation_level,
        },
    )
    return services

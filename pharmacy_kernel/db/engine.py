"""
Module: pharmacy_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation, and
    schema management.  This is the single point of database connection
    configuration for the kernel.  No module-level engine is kept: callers
    hold the engine they built.
Architecture position: Kernel > DB.  May import from db/base.py and config.
    MUST NOT import from services/ or domain/ (except create_tables, which
    imports models so Base.metadata is complete).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED (default) or SERIALIZABLE,
      with explicit row-level locking (FOR UPDATE) on inventory and order rows.
    - PostgreSQL connections carry statement_timeout and lock_timeout so no
      unit of work waits on a lock forever.
    - SQLite transactions open with BEGIN IMMEDIATE, taking the database write
      lock up front.  This gives the same check-then-decrement exclusion that
      FOR UPDATE gives on PostgreSQL.  Foreign keys are enabled per connection.

Failure modes:
    - OperationalError on connect failure (surfaced by the coordinator as
      StoreUnavailableError).
    - Connection pool exhaustion if pool_size + max_overflow is exceeded
      (bounded by pool_timeout).
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from pharmacy_kernel.config import KernelConfig
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_from_config(config: KernelConfig) -> Engine:
    """
    Build an Engine for the configured database URL.

    Args:
        config: Kernel configuration (URL, pool sizing, timeouts).

    Returns:
        SQLAlchemy Engine instance with dialect-specific hooks installed.
    """
    url = config.database_url

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=config.echo,
            connect_args={
                "timeout": config.sqlite_busy_timeout_s,
                "check_same_thread": False,
            },
        )
        _install_sqlite_hooks(engine)
        dialect = "sqlite"
    else:
        engine = create_engine(
            url,
            echo=config.echo,
            poolclass=QueuePool,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_pre_ping=True,
            pool_timeout=config.pool_timeout,
            pool_recycle=1800,
            isolation_level=config.isolation_level,
            connect_args={
                "options": (
                    f"-c statement_timeout={config.statement_timeout_ms} "
                    f"-c lock_timeout={config.lock_timeout_ms}"
                ),
            },
        )
        dialect = engine.dialect.name

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": config.pool_size,
            "max_overflow": config.max_overflow,
            "isolation_level": config.isolation_level,
            "echo": config.echo,
        },
    )
    return engine


def _install_sqlite_hooks(engine: Engine) -> None:
    """Take transaction control away from pysqlite and begin IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Session factory bound to the engine.

    Objects stay readable after commit (expire_on_commit=False) so services
    can build DTOs after the unit of work closes.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """
    Create every kernel table.

    Preconditions: engine is connected to a database the caller may alter.
    Postconditions: All tables registered on Base.metadata exist.
    """
    from pharmacy_kernel.db.base import Base
    import pharmacy_kernel.models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop all kernel tables. Use with caution - primarily for testing."""
    from pharmacy_kernel.db.base import Base
    import pharmacy_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    """Check if the engine talks to PostgreSQL."""
    return engine.dialect.name == "postgresql"

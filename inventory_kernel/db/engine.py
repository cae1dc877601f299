"""
Module: inventory_kernel.db.engine
Responsibility: SQLAlchemy engine construction and schema creation.
    Single point of database connection configuration.
Architecture position: Kernel > DB.  May import from db/base.py.
    ``create_tables`` imports the module ORM registry lazily.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED with explicit row locks
      (``SELECT ... FOR UPDATE``) where stronger isolation is needed.
    - SQLite connections emit their own BEGIN so that savepoints and
      rollback behave transactionally (pysqlite otherwise defers BEGIN).
    - File-backed SQLite gives every unit of work its own connection and
      starts it with ``BEGIN IMMEDIATE``; SQLite has no row locks, so the
      database write lock serializes writers instead.
    - In-memory SQLite shares one connection (StaticPool) and therefore
      one transaction: it supports a single writer at a time.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Seconds a file-backed SQLite writer waits for the database lock.
SQLITE_BUSY_TIMEOUT = 30


def is_sqlite_memory_url(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _install_sqlite_transaction_hooks(engine: Engine, begin_statement: str) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin_statement)


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite in-memory URLs share one connection (StaticPool) so every
    session sees the same database.  File URLs open a connection per
    checkout (NullPool) and take the write lock when the transaction
    begins.
    """
    if is_sqlite_memory_url(database_url):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_hooks(engine, "BEGIN")
    elif database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
        _install_sqlite_transaction_hooks(engine, "BEGIN IMMEDIATE")
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def create_tables(engine: Engine) -> None:
    """Create every table registered by the kernel and module ORM models."""
    from inventory_kernel.db.base import Base
    from inventory_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Primarily for testing."""
    from inventory_kernel.db.base import Base

    Base.metadata.drop_all(engine)

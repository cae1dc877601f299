"""
Pytest fixtures for the inventory core test suite.

Provides:
- Structured logging capture
- A deterministic clock and a test actor
- Units of work over both backends (in-memory store and SQLite via
  SQLAlchemy), selected by the parametrized ``backend`` fixture
- An ``InventoryCore`` wired over them, plus seeded products and warehouses

Environment Variables:
- INVENTORY_TEST_POSTGRES_URL: when set, tests marked ``postgres`` run
  against that database; otherwise they are skipped.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_config.schema import InventoryConfig
from inventory_kernel.db.engine import build_engine, create_tables, drop_tables
from inventory_kernel.db.memory import InMemoryStore
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_modules.stock.models import ALLOW_NEGATIVE_STOCK
from inventory_services.core import InventoryCore
from inventory_services.unit_of_work import in_memory_uow_factory, sqlalchemy_uow_factory

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

POSTGRES_URL_ENV = "INVENTORY_TEST_POSTGRES_URL"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising concurrent writers"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, core):
            core.ledger.apply_delta(...)
            logs = captured_logs()
            assert any(r["message"] == "stock_delta_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and actor
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def actor():
    return ActorContext(actor_id=TEST_ACTOR_ID, ip_address="127.0.0.1", user_agent="pytest")


# =============================================================================
# Units of work
# =============================================================================


@pytest.fixture
def sql_engine():
    """A fresh SQLite in-memory database with every table created."""
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def postgres_engine():
    url = os.environ.get(POSTGRES_URL_ENV)
    if not url:
        pytest.skip(f"{POSTGRES_URL_ENV} not set")
    engine = build_engine(url)
    drop_tables(engine)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def backend(request):
    return request.param


@pytest.fixture
def uow_factory_builder(backend, deterministic_clock, request):
    """
    Build unit-of-work factories over one shared database.

    ``builder(recorder_factory=...)`` swaps the activity recorder while
    keeping the same underlying store or engine.
    """
    if backend == "memory":
        store = InMemoryStore()

        def _build(recorder_factory=None):
            return in_memory_uow_factory(store, deterministic_clock, recorder_factory)
    else:
        engine = request.getfixturevalue("sql_engine")
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        def _build(recorder_factory=None):
            return sqlalchemy_uow_factory(session_factory, deterministic_clock, recorder_factory)

    return _build


@pytest.fixture
def uow_factory(uow_factory_builder):
    return uow_factory_builder()


@pytest.fixture
def inventory_config():
    return InventoryConfig()


@pytest.fixture
def core(uow_factory, inventory_config, deterministic_clock):
    return InventoryCore(uow_factory, inventory_config, deterministic_clock)


@pytest.fixture
def activity_history(uow_factory):
    """Committed activity records for one entity."""

    def _history(entity_type: str, entity_id: UUID):
        with uow_factory() as uow:
            return uow.activity.history(entity_type, entity_id)

    return _history


# =============================================================================
# Seed data
# =============================================================================


@dataclass(frozen=True)
class SeedData:
    widget: object
    bolt: object
    panel: object
    uncosted: object
    main: object
    backorder: object


@pytest.fixture
def seed(core, actor):
    """
    Products and warehouses used across the service suites.

    ``main`` rejects negative stock; ``backorder`` allows it.
    """
    widget = core.catalog.register_product("WID-001", "Widget", actor=actor, cost_price="25.0000")
    bolt = core.catalog.register_product("BLT-001", "Bolt", actor=actor, cost_price="0.1250")
    panel = core.catalog.register_product("PNL-001", "Panel", actor=actor, cost_price="4.5000")
    uncosted = core.catalog.register_product("UNC-001", "Uncosted part", actor=actor)
    main = core.ledger.register_warehouse("MAIN", "Main warehouse", actor=actor)
    backorder = core.ledger.register_warehouse(
        "BACK", "Backorder warehouse", actor=actor, settings={ALLOW_NEGATIVE_STOCK: True}
    )
    return SeedData(widget, bolt, panel, uncosted, main, backorder)

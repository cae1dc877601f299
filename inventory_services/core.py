"""
inventory_services.core -- Wiring for the inventory services.

Responsibility:
    Creates every module service exactly once over one unit-of-work
    factory, clock and configuration set, and exposes them as
    attributes.  This is the one place where services are constructed
    and composed.

Architecture position:
    Services -- top of the service layer.  Tests and entrypoints build an
    ``InventoryCore``; module services never construct each other.

Usage:
    core = build_inventory_core(load_config(), backend="sql")
    core.ledger.apply_delta(product_id, warehouse_id, "5", actor=actor)
    core.purchase_orders.receive_full(order_id, actor=actor)
    core.production_orders.record_production(production_id, "2", actor=actor)
"""

from __future__ import annotations

from typing import Literal

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from inventory_config.schema import InventoryConfig
from inventory_engines.bom_explosion import BomExplosionEngine
from inventory_kernel.db.engine import build_engine, create_tables
from inventory_kernel.db.memory import InMemoryStore
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import configure_logging, get_logger
from inventory_modules.catalog.service import CatalogService
from inventory_modules.manufacturing.production import ProductionOrderService
from inventory_modules.manufacturing.service import BomService
from inventory_modules.procurement.service import PurchaseOrderWorkflow
from inventory_modules.stock.service import StockLedger
from inventory_services.unit_of_work import (
    RecorderFactory,
    UnitOfWorkFactory,
    in_memory_uow_factory,
    sqlalchemy_uow_factory,
)

logger = get_logger("services.core")

Backend = Literal["sql", "memory"]


class InventoryCore:
    """Service container.

    Contract:
        Receives a unit-of-work factory, a configuration set and a clock;
        constructs each service once, in dependency order.

    Non-goals:
        - Does NOT open units of work itself.
        - Does NOT own the engine or store lifecycle.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config: InventoryConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or InventoryConfig()
        self.clock = clock or SystemClock()
        self.uow_factory = uow_factory

        self.bom_engine = BomExplosionEngine()
        # Ledger first: catalog deletion and receipts depend on it
        self.ledger = StockLedger(uow_factory, self.config.stock, self.clock)
        self.catalog = CatalogService(uow_factory, self.ledger, self.clock)
        self.boms = BomService(
            uow_factory, self.bom_engine, self.config.manufacturing, self.clock
        )
        self.purchase_orders = PurchaseOrderWorkflow(
            uow_factory, self.ledger, self.config.procurement, self.clock
        )
        self.production_orders = ProductionOrderService(
            uow_factory, self.ledger, self.bom_engine, self.config.manufacturing, self.clock
        )


def build_sql_engine(config: InventoryConfig) -> Engine:
    """Engine for ``config.database`` with every table created."""
    db = config.database
    engine = build_engine(
        db.url, echo=db.echo, pool_size=db.pool_size, max_overflow=db.max_overflow
    )
    create_tables(engine)
    return engine


def build_inventory_core(
    config: InventoryConfig | None = None,
    backend: Backend = "sql",
    *,
    clock: Clock | None = None,
    engine: Engine | None = None,
    store: InMemoryStore | None = None,
    recorder_factory: RecorderFactory | None = None,
    setup_logging: bool = True,
) -> InventoryCore:
    """
    Build an ``InventoryCore`` on the SQLAlchemy or in-memory backend.

    ``engine`` / ``store`` reuse an existing database; otherwise one is
    created from ``config``.
    """
    config = config or InventoryConfig()
    clock = clock or SystemClock()
    if setup_logging:
        configure_logging(level=config.logging.level)

    if backend == "sql":
        engine = engine or build_sql_engine(config)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        uow_factory = sqlalchemy_uow_factory(session_factory, clock, recorder_factory)
    elif backend == "memory":
        uow_factory = in_memory_uow_factory(store or InMemoryStore(), clock, recorder_factory)
    else:
        raise ValueError(f"Unknown backend {backend!r}; expected 'sql' or 'memory'")

    logger.info(
        "inventory_core_built",
        extra={"backend": backend, "config_name": config.name},
    )
    return InventoryCore(uow_factory, config, clock)

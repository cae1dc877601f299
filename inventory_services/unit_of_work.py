"""
inventory_services.unit_of_work -- Transaction boundary for domain actions.

Responsibility:
    Bundles one transaction with the repositories and the activity
    recorder that operate inside it.  Every public service method opens
    exactly one unit of work; operations that compose (a receipt posting
    a stock delta) share the caller's unit.

Architecture position:
    Services -- composition over kernel DB primitives and module
    repositories.  Module services depend on the ``UnitOfWork`` protocol
    and a ``UnitOfWorkFactory``, never on a concrete backend.

Invariants enforced:
    - Leaving the context without ``commit()`` rolls back.
    - Row locks (``SELECT ... FOR UPDATE`` or in-memory per-key locks)
      are held until commit or rollback.
    - The activity recorder writes through the same transaction, so a
      recorder failure rolls the domain change back.

Failure modes:
    - Anything raised inside the ``with`` block propagates after rollback.
    - ``RuntimeError`` on use of a closed in-memory unit.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.db.memory import InMemoryStore
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.activity_recorder import (
    ActivityRecorder,
    InMemoryActivityRecorder,
    SqlActivityRecorder,
)
from inventory_modules.catalog.repository import (
    InMemoryProductRepository,
    ProductRepository,
    SqlProductRepository,
)
from inventory_modules.manufacturing.repository import (
    BomRepository,
    InMemoryBomRepository,
    InMemoryProductionOrderRepository,
    ProductionOrderRepository,
    SqlBomRepository,
    SqlProductionOrderRepository,
)
from inventory_modules.procurement.repository import (
    InMemoryPurchaseOrderRepository,
    PurchaseOrderRepository,
    SqlPurchaseOrderRepository,
)
from inventory_modules.stock.repository import (
    InMemoryStockLocationRepository,
    InMemoryStockMovementRepository,
    InMemoryWarehouseRepository,
    SqlStockLocationRepository,
    SqlStockMovementRepository,
    SqlWarehouseRepository,
    StockLocationRepository,
    StockMovementRepository,
    WarehouseRepository,
)

logger = get_logger("services.unit_of_work")

# Builds the recorder for one unit; receives the session or transaction
RecorderFactory = Callable[[Any, Clock], ActivityRecorder]


class UnitOfWork(Protocol):
    products: ProductRepository
    warehouses: WarehouseRepository
    stock_locations: StockLocationRepository
    stock_movements: StockMovementRepository
    boms: BomRepository
    production_orders: ProductionOrderRepository
    purchase_orders: PurchaseOrderRepository
    activity: ActivityRecorder

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def __enter__(self) -> UnitOfWork: ...

    def __exit__(self, exc_type, exc, tb) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class SqlAlchemyUnitOfWork:
    """
    One SQLAlchemy session per unit.

    Non-goals:
        Does NOT retry on serialization or lock failures.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        recorder_factory: RecorderFactory | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._recorder_factory = recorder_factory or SqlActivityRecorder
        self._session: Session | None = None
        self._committed = False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("Unit of work has not been entered")
        return self._session

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        session = self._session_factory()
        self._session = session
        self._committed = False
        self.products = SqlProductRepository(session)
        self.warehouses = SqlWarehouseRepository(session)
        self.stock_locations = SqlStockLocationRepository(session)
        self.stock_movements = SqlStockMovementRepository(session)
        self.boms = SqlBomRepository(session)
        self.production_orders = SqlProductionOrderRepository(session)
        self.purchase_orders = SqlPurchaseOrderRepository(session)
        self.activity = self._recorder_factory(session, self._clock)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._committed:
                self.rollback()
                if exc_type is not None:
                    logger.warning(
                        "transaction_rolled_back",
                        extra={"error_type": exc_type.__name__},
                    )
        finally:
            self.session.close()
            self._session = None

    def commit(self) -> None:
        self.session.commit()
        self._committed = True
        logger.debug("transaction_committed")

    def rollback(self) -> None:
        self.session.rollback()


class InMemoryUnitOfWork:
    """One ``InMemoryTransaction`` per unit."""

    def __init__(
        self,
        store: InMemoryStore,
        clock: Clock | None = None,
        recorder_factory: RecorderFactory | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._recorder_factory = recorder_factory or InMemoryActivityRecorder
        self._tx = None
        self._committed = False

    def __enter__(self) -> InMemoryUnitOfWork:
        tx = self._store.begin()
        self._tx = tx
        self._committed = False
        self.products = InMemoryProductRepository(tx)
        self.warehouses = InMemoryWarehouseRepository(tx)
        self.stock_locations = InMemoryStockLocationRepository(tx)
        self.stock_movements = InMemoryStockMovementRepository(tx)
        self.boms = InMemoryBomRepository(tx)
        self.production_orders = InMemoryProductionOrderRepository(tx)
        self.purchase_orders = InMemoryPurchaseOrderRepository(tx)
        self.activity = self._recorder_factory(tx, self._clock)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._committed:
            return
        self.rollback()
        if exc_type is not None:
            logger.warning(
                "transaction_rolled_back",
                extra={"error_type": exc_type.__name__},
            )

    def commit(self) -> None:
        self._tx.commit()
        self._committed = True
        logger.debug("transaction_committed")

    def rollback(self) -> None:
        if self._tx is not None:
            self._tx.rollback()


def sqlalchemy_uow_factory(
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
    recorder_factory: RecorderFactory | None = None,
) -> UnitOfWorkFactory:
    """Factory handing out a fresh ``SqlAlchemyUnitOfWork`` per call."""
    return lambda: SqlAlchemyUnitOfWork(session_factory, clock, recorder_factory)


def in_memory_uow_factory(
    store: InMemoryStore | None = None,
    clock: Clock | None = None,
    recorder_factory: RecorderFactory | None = None,
) -> UnitOfWorkFactory:
    store = store or InMemoryStore()
    return lambda: InMemoryUnitOfWork(store, clock, recorder_factory)

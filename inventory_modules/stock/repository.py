"""
Stock repositories.

Three call contracts (warehouses, stock locations, movement history) with
interchangeable SQLAlchemy and in-memory adapters.  Stock locations are
keyed by (product_id, warehouse_id) and created lazily under lock by
``lock_or_create``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.db.locking import check_version, lock_one
from inventory_kernel.db.memory import InMemoryTransaction
from inventory_kernel.logging_config import get_logger
from inventory_modules.stock.models import StockLocation, StockMovement, Warehouse
from inventory_modules.stock.orm import StockLocationModel, StockMovementModel, WarehouseModel

logger = get_logger("modules.stock.repository")

WAREHOUSES = "warehouses"
STOCK_LOCATIONS = "stock_locations"
STOCK_MOVEMENTS = "stock_movements"


@runtime_checkable
class WarehouseRepository(Protocol):
    def get(self, warehouse_id: UUID, include_deleted: bool = False) -> Warehouse | None: ...

    def get_for_update(self, warehouse_id: UUID) -> Warehouse | None: ...

    def find_by_code(self, code: str) -> Warehouse | None: ...

    def save(self, warehouse: Warehouse, actor_id: UUID) -> Warehouse: ...


@runtime_checkable
class StockLocationRepository(Protocol):
    def get(self, product_id: UUID, warehouse_id: UUID) -> StockLocation | None: ...

    def lock_or_create(self, product_id: UUID, warehouse_id: UUID, actor_id: UUID) -> StockLocation:
        """Lock the (product, warehouse) row, inserting an empty one if absent."""
        ...

    def list_for_product(self, product_id: UUID) -> list[StockLocation]: ...

    def save(self, location: StockLocation, actor_id: UUID) -> StockLocation: ...


@runtime_checkable
class StockMovementRepository(Protocol):
    def append(self, movement: StockMovement) -> StockMovement: ...

    def list_for_product(self, product_id: UUID, warehouse_id: UUID | None = None) -> list[StockMovement]: ...

    def count_since(self, product_id: UUID, since: datetime) -> int: ...


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


class SqlWarehouseRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, warehouse_id: UUID, include_deleted: bool = False) -> Warehouse | None:
        model = self._session.get(WarehouseModel, warehouse_id)
        if model is None or (model.deleted_at is not None and not include_deleted):
            return None
        return model.to_dto()

    def get_for_update(self, warehouse_id: UUID) -> Warehouse | None:
        model = lock_one(
            self._session, select(WarehouseModel).where(WarehouseModel.id == warehouse_id)
        )
        return model.to_dto() if model is not None else None

    def find_by_code(self, code: str) -> Warehouse | None:
        model = self._session.execute(
            select(WarehouseModel).where(
                WarehouseModel.code == code, WarehouseModel.deleted_at.is_(None)
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def save(self, warehouse: Warehouse, actor_id: UUID) -> Warehouse:
        model = self._session.get(WarehouseModel, warehouse.id)
        if model is None:
            model = WarehouseModel.from_dto(warehouse, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("Warehouse", warehouse.id, model.version, warehouse.version)
            model.apply_dto(warehouse, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class SqlStockLocationRepository:
    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def _by_key(product_id: UUID, warehouse_id: UUID):
        return select(StockLocationModel).where(
            StockLocationModel.product_id == product_id,
            StockLocationModel.warehouse_id == warehouse_id,
        )

    def get(self, product_id: UUID, warehouse_id: UUID) -> StockLocation | None:
        model = self._session.execute(
            self._by_key(product_id, warehouse_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def lock_or_create(self, product_id: UUID, warehouse_id: UUID, actor_id: UUID) -> StockLocation:
        model = lock_one(self._session, self._by_key(product_id, warehouse_id))
        if model is not None:
            return model.to_dto()

        # Concurrent first touch of the same pair: insert inside a savepoint
        # so a unique-constraint loss rolls back only the insert
        savepoint = self._session.begin_nested()
        try:
            model = StockLocationModel.from_dto(
                StockLocation(id=uuid4(), product_id=product_id, warehouse_id=warehouse_id),
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
            logger.debug(
                "stock_location_created",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
        except IntegrityError:
            logger.debug(
                "stock_location_race_retry",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            savepoint.rollback()
            self._session.expire_all()
            model = lock_one(self._session, self._by_key(product_id, warehouse_id))
            if model is None:
                raise
        return model.to_dto()

    def list_for_product(self, product_id: UUID) -> list[StockLocation]:
        rows = self._session.execute(
            select(StockLocationModel)
            .where(StockLocationModel.product_id == product_id)
            .order_by(StockLocationModel.warehouse_id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def save(self, location: StockLocation, actor_id: UUID) -> StockLocation:
        model = self._session.get(StockLocationModel, location.id)
        if model is None:
            model = StockLocationModel.from_dto(location, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("StockLocation", location.id, model.version, location.version)
            model.apply_dto(location, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class SqlStockMovementRepository:
    def __init__(self, session: Session):
        self._session = session

    def append(self, movement: StockMovement) -> StockMovement:
        self._session.add(StockMovementModel.from_dto(movement))
        self._session.flush()
        return movement

    def list_for_product(self, product_id: UUID, warehouse_id: UUID | None = None) -> list[StockMovement]:
        stmt = select(StockMovementModel).where(StockMovementModel.product_id == product_id)
        if warehouse_id is not None:
            stmt = stmt.where(StockMovementModel.warehouse_id == warehouse_id)
        rows = self._session.execute(stmt.order_by(StockMovementModel.occurred_at)).scalars()
        return [row.to_dto() for row in rows]

    def count_since(self, product_id: UUID, since: datetime) -> int:
        return self._session.execute(
            select(func.count())
            .select_from(StockMovementModel)
            .where(
                StockMovementModel.product_id == product_id,
                StockMovementModel.occurred_at >= since,
            )
        ).scalar_one()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryWarehouseRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, warehouse_id: UUID, include_deleted: bool = False) -> Warehouse | None:
        warehouse = self._tx.get(WAREHOUSES, warehouse_id)
        if warehouse is None or (warehouse.is_deleted and not include_deleted):
            return None
        return warehouse

    def get_for_update(self, warehouse_id: UUID) -> Warehouse | None:
        self._tx.lock(WAREHOUSES, warehouse_id)
        return self._tx.get(WAREHOUSES, warehouse_id)

    def find_by_code(self, code: str) -> Warehouse | None:
        for warehouse in self._tx.scan(WAREHOUSES):
            if warehouse.code == code and not warehouse.is_deleted:
                return warehouse
        return None

    def save(self, warehouse: Warehouse, actor_id: UUID) -> Warehouse:
        stored = self._tx.get(WAREHOUSES, warehouse.id)
        if stored is not None:
            check_version("Warehouse", warehouse.id, stored.version, warehouse.version)
        saved = replace(warehouse, version=warehouse.version + 1)
        self._tx.put(WAREHOUSES, warehouse.id, saved)
        return saved


class InMemoryStockLocationRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, product_id: UUID, warehouse_id: UUID) -> StockLocation | None:
        return self._tx.get(STOCK_LOCATIONS, (product_id, warehouse_id))

    def lock_or_create(self, product_id: UUID, warehouse_id: UUID, actor_id: UUID) -> StockLocation:
        key = (product_id, warehouse_id)
        # The key lock exists before the row does, so creation cannot race
        self._tx.lock(STOCK_LOCATIONS, key)
        location = self._tx.get(STOCK_LOCATIONS, key)
        if location is None:
            location = self.save(
                StockLocation(id=uuid4(), product_id=product_id, warehouse_id=warehouse_id),
                actor_id,
            )
            logger.debug(
                "stock_location_created",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
        return location

    def list_for_product(self, product_id: UUID) -> list[StockLocation]:
        return sorted(
            (loc for loc in self._tx.scan(STOCK_LOCATIONS) if loc.product_id == product_id),
            key=lambda loc: str(loc.warehouse_id),
        )

    def save(self, location: StockLocation, actor_id: UUID) -> StockLocation:
        stored = self._tx.get(STOCK_LOCATIONS, location.key)
        if stored is not None:
            check_version("StockLocation", location.id, stored.version, location.version)
        saved = replace(location, version=location.version + 1)
        self._tx.put(STOCK_LOCATIONS, location.key, saved)
        return saved


class InMemoryStockMovementRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def append(self, movement: StockMovement) -> StockMovement:
        self._tx.put(STOCK_MOVEMENTS, movement.id, movement)
        return movement

    def list_for_product(self, product_id: UUID, warehouse_id: UUID | None = None) -> list[StockMovement]:
        return sorted(
            (
                m for m in self._tx.scan(STOCK_MOVEMENTS)
                if m.product_id == product_id
                and (warehouse_id is None or m.warehouse_id == warehouse_id)
            ),
            key=lambda m: m.occurred_at,
        )

    def count_since(self, product_id: UUID, since: datetime) -> int:
        return sum(
            1 for m in self._tx.scan(STOCK_MOVEMENTS)
            if m.product_id == product_id and m.occurred_at >= since
        )

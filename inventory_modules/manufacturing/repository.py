"""
BOM repositories.

``BomRepository`` loads and saves the whole aggregate (header plus lines).
``ProductionOrderRepository`` locks the order row for every lifecycle step,
so output recorded against one order is serialized.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.db.locking import check_version, lock_one
from inventory_kernel.db.memory import InMemoryTransaction
from inventory_modules.manufacturing.models import (
    BillOfMaterials,
    ProductionOrder,
    ProductionStatus,
)
from inventory_modules.manufacturing.orm import BomModel, ProductionOrderModel

BOMS = "boms"
PRODUCTION_ORDERS = "production_orders"


@runtime_checkable
class BomRepository(Protocol):
    def get(self, bom_id: UUID, include_deleted: bool = False) -> BillOfMaterials | None: ...

    def get_for_update(self, bom_id: UUID) -> BillOfMaterials | None: ...

    def find_by_code(self, code: str) -> BillOfMaterials | None: ...

    def list_for_product(self, product_id: UUID, active_only: bool = False) -> list[BillOfMaterials]: ...

    def save(self, bom: BillOfMaterials, actor_id: UUID) -> BillOfMaterials: ...


class SqlBomRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, bom_id: UUID, include_deleted: bool = False) -> BillOfMaterials | None:
        model = self._session.get(BomModel, bom_id)
        if model is None or (model.deleted_at is not None and not include_deleted):
            return None
        return model.to_dto()

    def get_for_update(self, bom_id: UUID) -> BillOfMaterials | None:
        model = lock_one(self._session, select(BomModel).where(BomModel.id == bom_id))
        return model.to_dto() if model is not None else None

    def find_by_code(self, code: str) -> BillOfMaterials | None:
        model = self._session.execute(
            select(BomModel).where(BomModel.code == code)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_for_product(self, product_id: UUID, active_only: bool = False) -> list[BillOfMaterials]:
        stmt = select(BomModel).where(
            BomModel.product_id == product_id, BomModel.deleted_at.is_(None)
        )
        if active_only:
            stmt = stmt.where(BomModel.is_active.is_(True))
        rows = self._session.execute(stmt.order_by(BomModel.revision)).scalars()
        return [row.to_dto() for row in rows]

    def save(self, bom: BillOfMaterials, actor_id: UUID) -> BillOfMaterials:
        model = self._session.get(BomModel, bom.id)
        if model is None:
            model = BomModel.from_dto(bom, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("BillOfMaterials", bom.id, model.version, bom.version)
            model.apply_dto(bom, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class InMemoryBomRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, bom_id: UUID, include_deleted: bool = False) -> BillOfMaterials | None:
        bom = self._tx.get(BOMS, bom_id)
        if bom is None or (bom.is_deleted and not include_deleted):
            return None
        return bom

    def get_for_update(self, bom_id: UUID) -> BillOfMaterials | None:
        self._tx.lock(BOMS, bom_id)
        return self._tx.get(BOMS, bom_id)

    def find_by_code(self, code: str) -> BillOfMaterials | None:
        for bom in self._tx.scan(BOMS):
            if bom.code == code:
                return bom
        return None

    def list_for_product(self, product_id: UUID, active_only: bool = False) -> list[BillOfMaterials]:
        return sorted(
            (
                bom for bom in self._tx.scan(BOMS)
                if bom.product_id == product_id
                and not bom.is_deleted
                and (bom.is_active or not active_only)
            ),
            key=lambda bom: bom.revision,
        )

    def save(self, bom: BillOfMaterials, actor_id: UUID) -> BillOfMaterials:
        stored = self._tx.get(BOMS, bom.id)
        if stored is not None:
            check_version("BillOfMaterials", bom.id, stored.version, bom.version)
        saved = replace(bom, version=bom.version + 1)
        self._tx.put(BOMS, bom.id, saved)
        return saved


@runtime_checkable
class ProductionOrderRepository(Protocol):
    def get(self, order_id: UUID, include_deleted: bool = False) -> ProductionOrder | None: ...

    def get_for_update(self, order_id: UUID) -> ProductionOrder | None: ...

    def list_by_status(self, status: ProductionStatus) -> list[ProductionOrder]: ...

    def list_for_bom(self, bom_id: UUID) -> list[ProductionOrder]: ...

    def save(self, order: ProductionOrder, actor_id: UUID) -> ProductionOrder: ...


class SqlProductionOrderRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, order_id: UUID, include_deleted: bool = False) -> ProductionOrder | None:
        model = self._session.get(ProductionOrderModel, order_id)
        if model is None or (model.deleted_at is not None and not include_deleted):
            return None
        return model.to_dto()

    def get_for_update(self, order_id: UUID) -> ProductionOrder | None:
        model = lock_one(
            self._session,
            select(ProductionOrderModel).where(ProductionOrderModel.id == order_id),
        )
        return model.to_dto() if model is not None else None

    def list_by_status(self, status: ProductionStatus) -> list[ProductionOrder]:
        rows = self._session.execute(
            select(ProductionOrderModel)
            .where(
                ProductionOrderModel.status == status.value,
                ProductionOrderModel.deleted_at.is_(None),
            )
            .order_by(ProductionOrderModel.order_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def list_for_bom(self, bom_id: UUID) -> list[ProductionOrder]:
        rows = self._session.execute(
            select(ProductionOrderModel)
            .where(
                ProductionOrderModel.bom_id == bom_id,
                ProductionOrderModel.deleted_at.is_(None),
            )
            .order_by(ProductionOrderModel.order_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def save(self, order: ProductionOrder, actor_id: UUID) -> ProductionOrder:
        model = self._session.get(ProductionOrderModel, order.id)
        if model is None:
            model = ProductionOrderModel.from_dto(order, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("ProductionOrder", order.id, model.version, order.version)
            model.apply_dto(order, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class InMemoryProductionOrderRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, order_id: UUID, include_deleted: bool = False) -> ProductionOrder | None:
        order = self._tx.get(PRODUCTION_ORDERS, order_id)
        if order is None or (order.is_deleted and not include_deleted):
            return None
        return order

    def get_for_update(self, order_id: UUID) -> ProductionOrder | None:
        self._tx.lock(PRODUCTION_ORDERS, order_id)
        return self._tx.get(PRODUCTION_ORDERS, order_id)

    def list_by_status(self, status: ProductionStatus) -> list[ProductionOrder]:
        return sorted(
            (
                order for order in self._tx.scan(PRODUCTION_ORDERS)
                if order.status is status and not order.is_deleted
            ),
            key=lambda order: order.order_number,
        )

    def list_for_bom(self, bom_id: UUID) -> list[ProductionOrder]:
        return sorted(
            (
                order for order in self._tx.scan(PRODUCTION_ORDERS)
                if order.bom_id == bom_id and not order.is_deleted
            ),
            key=lambda order: order.order_number,
        )

    def save(self, order: ProductionOrder, actor_id: UUID) -> ProductionOrder:
        stored = self._tx.get(PRODUCTION_ORDERS, order.id)
        if stored is not None:
            check_version("ProductionOrder", order.id, stored.version, order.version)
        saved = replace(order, version=order.version + 1)
        self._tx.put(PRODUCTION_ORDERS, order.id, saved)
        return saved

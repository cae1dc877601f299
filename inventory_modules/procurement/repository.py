"""
Purchase order repositories.

``PurchaseOrderRepository`` loads and saves the whole order with its
lines.  ``get_for_update`` locks the order row, which also serializes
receipts against every line of the order.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.db.locking import check_version, lock_one
from inventory_kernel.db.memory import InMemoryTransaction
from inventory_modules.procurement.models import POStatus, PurchaseOrder
from inventory_modules.procurement.orm import PurchaseOrderModel

PURCHASE_ORDERS = "purchase_orders"


@runtime_checkable
class PurchaseOrderRepository(Protocol):
    def get(self, order_id: UUID, include_deleted: bool = False) -> PurchaseOrder | None: ...

    def get_for_update(self, order_id: UUID) -> PurchaseOrder | None: ...

    def find_by_number(self, po_number: str) -> PurchaseOrder | None: ...

    def list_by_status(self, status: POStatus) -> list[PurchaseOrder]: ...

    def save(self, order: PurchaseOrder, actor_id: UUID) -> PurchaseOrder: ...


class SqlPurchaseOrderRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, order_id: UUID, include_deleted: bool = False) -> PurchaseOrder | None:
        model = self._session.get(PurchaseOrderModel, order_id)
        if model is None or (model.deleted_at is not None and not include_deleted):
            return None
        return model.to_dto()

    def get_for_update(self, order_id: UUID) -> PurchaseOrder | None:
        model = lock_one(
            self._session,
            select(PurchaseOrderModel).where(PurchaseOrderModel.id == order_id),
        )
        return model.to_dto() if model is not None else None

    def find_by_number(self, po_number: str) -> PurchaseOrder | None:
        model = self._session.execute(
            select(PurchaseOrderModel).where(PurchaseOrderModel.po_number == po_number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_by_status(self, status: POStatus) -> list[PurchaseOrder]:
        rows = self._session.execute(
            select(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.status == status.value,
                PurchaseOrderModel.deleted_at.is_(None),
            )
            .order_by(PurchaseOrderModel.order_date, PurchaseOrderModel.po_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def save(self, order: PurchaseOrder, actor_id: UUID) -> PurchaseOrder:
        model = self._session.get(PurchaseOrderModel, order.id)
        if model is None:
            model = PurchaseOrderModel.from_dto(order, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("PurchaseOrder", order.id, model.version, order.version)
            model.apply_dto(order, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class InMemoryPurchaseOrderRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, order_id: UUID, include_deleted: bool = False) -> PurchaseOrder | None:
        order = self._tx.get(PURCHASE_ORDERS, order_id)
        if order is None or (order.is_deleted and not include_deleted):
            return None
        return order

    def get_for_update(self, order_id: UUID) -> PurchaseOrder | None:
        self._tx.lock(PURCHASE_ORDERS, order_id)
        return self._tx.get(PURCHASE_ORDERS, order_id)

    def find_by_number(self, po_number: str) -> PurchaseOrder | None:
        for order in self._tx.scan(PURCHASE_ORDERS):
            if order.po_number == po_number:
                return order
        return None

    def list_by_status(self, status: POStatus) -> list[PurchaseOrder]:
        return sorted(
            (
                order for order in self._tx.scan(PURCHASE_ORDERS)
                if order.status is status and not order.is_deleted
            ),
            key=lambda order: (order.order_date, order.po_number),
        )

    def save(self, order: PurchaseOrder, actor_id: UUID) -> PurchaseOrder:
        stored = self._tx.get(PURCHASE_ORDERS, order.id)
        if stored is not None:
            check_version("PurchaseOrder", order.id, stored.version, order.version)
        saved = replace(order, version=order.version + 1)
        self._tx.put(PURCHASE_ORDERS, order.id, saved)
        return saved

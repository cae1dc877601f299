"""
Product repositories.

``ProductRepository`` is the call contract the services depend on; the
SQLAlchemy and in-memory classes are interchangeable adapters.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.db.locking import check_version, lock_one
from inventory_kernel.db.memory import InMemoryTransaction
from inventory_modules.catalog.models import Product
from inventory_modules.catalog.orm import ProductModel

PRODUCTS = "products"


@runtime_checkable
class ProductRepository(Protocol):
    def get(self, product_id: UUID, include_deleted: bool = False) -> Product | None: ...

    def get_many(self, product_ids: Iterable[UUID]) -> dict[UUID, Product]: ...

    def get_for_update(self, product_id: UUID) -> Product | None: ...

    def find_by_sku(self, sku: str) -> Product | None: ...

    def save(self, product: Product, actor_id: UUID) -> Product: ...


class SqlProductRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, product_id: UUID, include_deleted: bool = False) -> Product | None:
        model = self._session.get(ProductModel, product_id)
        if model is None or (model.deleted_at is not None and not include_deleted):
            return None
        return model.to_dto()

    def get_many(self, product_ids: Iterable[UUID]) -> dict[UUID, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self._session.execute(
            select(ProductModel).where(ProductModel.id.in_(ids))
        ).scalars()
        return {row.id: row.to_dto() for row in rows}

    def get_for_update(self, product_id: UUID) -> Product | None:
        model = lock_one(
            self._session, select(ProductModel).where(ProductModel.id == product_id)
        )
        return model.to_dto() if model is not None else None

    def find_by_sku(self, sku: str) -> Product | None:
        model = self._session.execute(
            select(ProductModel).where(
                ProductModel.sku == sku, ProductModel.deleted_at.is_(None)
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def save(self, product: Product, actor_id: UUID) -> Product:
        model = self._session.get(ProductModel, product.id)
        if model is None:
            model = ProductModel.from_dto(product, created_by_id=actor_id)
            self._session.add(model)
        else:
            check_version("Product", product.id, model.version, product.version)
            model.apply_dto(product, updated_by_id=actor_id)
        self._session.flush()
        return model.to_dto()


class InMemoryProductRepository:
    def __init__(self, transaction: InMemoryTransaction):
        self._tx = transaction

    def get(self, product_id: UUID, include_deleted: bool = False) -> Product | None:
        product = self._tx.get(PRODUCTS, product_id)
        if product is None or (product.is_deleted and not include_deleted):
            return None
        return product

    def get_many(self, product_ids: Iterable[UUID]) -> dict[UUID, Product]:
        found = {}
        for product_id in set(product_ids):
            product = self._tx.get(PRODUCTS, product_id)
            if product is not None:
                found[product_id] = product
        return found

    def get_for_update(self, product_id: UUID) -> Product | None:
        self._tx.lock(PRODUCTS, product_id)
        return self._tx.get(PRODUCTS, product_id)

    def find_by_sku(self, sku: str) -> Product | None:
        for product in self._tx.scan(PRODUCTS):
            if product.sku == sku and not product.is_deleted:
                return product
        return None

    def save(self, product: Product, actor_id: UUID) -> Product:
        stored = self._tx.get(PRODUCTS, product.id)
        if stored is not None:
            check_version("Product", product.id, stored.version, product.version)
        saved = replace(product, version=product.version + 1)
        self._tx.put(PRODUCTS, product.id, saved)
        return saved

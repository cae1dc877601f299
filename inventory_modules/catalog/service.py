"""
Catalog Service (``inventory_modules.catalog.service``).

Registers products, maintains their cost price and active flag, and
soft-deletes them once the stock ledger agrees nothing references them.
Each public method is one unit of work.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, ScaledDecimal, ScaledInput
from inventory_kernel.exceptions import EntityNotFoundError, ValidationFailedError
from inventory_kernel.logging_config import action_scope, get_logger
from inventory_kernel.models.activity_log import ActivityAction
from inventory_modules.catalog.models import Product

if TYPE_CHECKING:
    from inventory_modules.stock.service import StockLedger
    from inventory_services.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = get_logger("modules.catalog.service")

ENTITY = "Product"


class CatalogService:
    """Product reference data."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: StockLedger,
        clock: Clock | None = None,
    ):
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._clock = clock or SystemClock()

    def register_product(
        self,
        sku: str,
        name: str,
        *,
        actor: ActorContext,
        unit: str = "pcs",
        cost_price: ScaledInput | None = None,
        product_id: UUID | None = None,
    ) -> Product:
        product = Product(
            id=product_id or uuid4(),
            sku=sku,
            name=name,
            unit=unit,
            cost_price=ScaledDecimal.of(cost_price, MONEY_SCALE) if cost_price is not None else None,
        )
        with action_scope(actor, ENTITY, product.id, "register_product"):
            with self._uow_factory() as uow:
                if uow.products.find_by_sku(sku) is not None:
                    raise ValidationFailedError(ENTITY, product.id, [f"sku '{sku}' is already in use"])
                saved = uow.products.save(product, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CREATE, ENTITY, saved.id,
                    new_values=saved.to_snapshot(), actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info("product_registered", extra={"product_id": str(saved.id), "sku": sku})
        return saved

    def get_product(self, product_id: UUID, include_deleted: bool = False) -> Product:
        with self._uow_factory() as uow:
            product = uow.products.get(product_id, include_deleted=include_deleted)
        if product is None:
            raise EntityNotFoundError(ENTITY, product_id)
        return product

    def update_cost_price(
        self, product_id: UUID, cost_price: ScaledInput | None, *, actor: ActorContext
    ) -> Product:
        new_cost = ScaledDecimal.of(cost_price, MONEY_SCALE) if cost_price is not None else None
        return self._mutate(
            product_id, actor, ActivityAction.UPDATE,
            lambda p: replace(p, cost_price=new_cost),
        )

    def set_active(self, product_id: UUID, active: bool, *, actor: ActorContext) -> Product:
        action = ActivityAction.ACTIVATE if active else ActivityAction.DEACTIVATE
        return self._mutate(product_id, actor, action, lambda p: replace(p, is_active=active))

    def delete_product(self, product_id: UUID, *, actor: ActorContext) -> Product:
        """
        Soft-delete a product.

        Raises:
            ValidationFailedError: stock on hand or movements inside the
                lookback window still reference the product.
        """
        with action_scope(actor, ENTITY, product_id, "delete_product"):
            with self._uow_factory() as uow:
                product = self._load_for_update(uow, product_id)
                if not self._ledger.can_delete_in(uow, product_id):
                    raise ValidationFailedError(
                        ENTITY, product_id,
                        ["product has stock on hand or recent stock movements"],
                    )
                deleted = replace(product, state=RecordState.deleted(self._clock.now()))
                saved = uow.products.save(deleted, actor.actor_id)
                uow.activity.record(
                    ActivityAction.DELETE, ENTITY, product_id,
                    old_values=product.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info("product_deleted", extra={"product_id": str(product_id)})
        return saved

    def _mutate(self, product_id, actor, action, change) -> Product:
        with action_scope(actor, ENTITY, product_id, action.value):
            with self._uow_factory() as uow:
                product = self._load_for_update(uow, product_id)
                saved = uow.products.save(change(product), actor.actor_id)
                uow.activity.record(
                    action, ENTITY, product_id,
                    old_values=product.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "product_updated",
                extra={"product_id": str(product_id)},
            )
        return saved

    @staticmethod
    def _load_for_update(uow: UnitOfWork, product_id: UUID) -> Product:
        product = uow.products.get_for_update(product_id)
        if product is None or product.is_deleted:
            raise EntityNotFoundError(ENTITY, product_id)
        return product

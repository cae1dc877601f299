"""
ProductionOrderService -- running a BOM against stock.

Responsibility:
    Plans production orders for an active BOM, reserves component stock
    in the source warehouse, records output (consuming components and
    posting the finished product to the destination warehouse), and
    completes, cancels and closes orders.

Architecture position:
    Modules > Manufacturing.  Transition rules come from
    ``PRODUCTION_ORDER_WORKFLOW``; quantities come from the
    ``BomExplosionEngine``; stock effects go through ``StockLedger``
    inside the same unit of work as the order change.

Invariants enforced:
    - ``quantity_produced <= quantity_to_produce``.  Excess output raises
      OverProductionError and is never clamped.
    - Output, its component consumption, its reservation releases and its
      activity records commit together or not at all.
    - The order row is locked first, then every stock location the step
      touches, in sorted (product, warehouse) order.
    - Completed and cancelled orders hold no reservations.

Failure modes:
    - InvalidTransitionError, OverProductionError, ValidationFailedError,
      EntityNotFoundError, and stock errors from the ledger
      (InsufficientAvailableStockError, NegativeStockRejectedError).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Callable
from uuid import UUID, uuid4

from inventory_engines.bom_explosion import BomExplosion, BomExplosionEngine
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.values import QUANTITY_SCALE, ScaledDecimal, ScaledInput
from inventory_kernel.domain.workflow import Workflow
from inventory_kernel.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    OverProductionError,
    ValidationFailedError,
)
from inventory_kernel.logging_config import action_scope, get_logger
from inventory_kernel.models.activity_log import ActivityAction
from inventory_modules.manufacturing.config import ManufacturingConfig
from inventory_modules.manufacturing.models import (
    BillOfMaterials,
    ComponentReservation,
    ProductionOrder,
    ProductionStatus,
)
from inventory_modules.manufacturing.service import component_costs
from inventory_modules.manufacturing.workflows import PRODUCTION_ORDER_WORKFLOW
from inventory_modules.stock.models import MovementReason, SourceReference

if TYPE_CHECKING:
    from inventory_modules.stock.service import StockLedger
    from inventory_services.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = get_logger("modules.manufacturing.production")

ENTITY = "ProductionOrder"
SOURCE_TYPE = "production_order"

OPEN_STATUSES = (
    ProductionStatus.PLANNED,
    ProductionStatus.RESERVED,
    ProductionStatus.IN_PROGRESS,
    ProductionStatus.PARTIALLY_COMPLETED,
)


class ProductionOrderService:
    """
    Production order lifecycle.

    Each public method is one unit of work.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: StockLedger,
        engine: BomExplosionEngine | None = None,
        config: ManufacturingConfig | None = None,
        clock: Clock | None = None,
        workflow: Workflow = PRODUCTION_ORDER_WORKFLOW,
    ):
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._engine = engine or BomExplosionEngine()
        self._config = config or ManufacturingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._workflow = workflow

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def create(
        self,
        bom_id: UUID,
        quantity_to_produce: ScaledInput,
        *,
        actor: ActorContext,
        source_warehouse_id: UUID | None = None,
        destination_warehouse_id: UUID | None = None,
        planned_start_date: date | None = None,
        planned_completion_date: date | None = None,
        notes: str | None = None,
        order_id: UUID | None = None,
    ) -> ProductionOrder:
        """
        Plan an order for an active BOM, numbered ``<prefix>-YYYYMMDD-XXXXXXXX``.

        The order produces the BOM's product; warehouses, when given,
        must exist.
        """
        order_id = order_id or uuid4()
        qty = ScaledDecimal.of(quantity_to_produce, QUANTITY_SCALE)
        with action_scope(actor, ENTITY, order_id, "create"):
            with self._uow_factory() as uow:
                bom = uow.boms.get(bom_id)
                if bom is None:
                    raise EntityNotFoundError("BillOfMaterials", bom_id)
                violations = self._plan_violations(
                    bom, qty, planned_start_date, planned_completion_date
                )
                if violations:
                    logger.warning(
                        "production_order_validation_failed",
                        extra={"bom_id": str(bom_id), "violations": violations},
                    )
                    raise ValidationFailedError(ENTITY, order_id, violations)
                for warehouse_id in (source_warehouse_id, destination_warehouse_id):
                    if warehouse_id is not None and uow.warehouses.get(warehouse_id) is None:
                        raise EntityNotFoundError("Warehouse", warehouse_id)

                order = ProductionOrder(
                    id=order_id,
                    order_number=self._order_number(order_id),
                    bom_id=bom.id,
                    product_id=bom.product_id,
                    quantity_to_produce=qty,
                    source_warehouse_id=source_warehouse_id,
                    destination_warehouse_id=destination_warehouse_id,
                    planned_start_date=planned_start_date,
                    planned_completion_date=planned_completion_date,
                    notes=notes,
                )
                saved = uow.production_orders.save(order, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CREATE, ENTITY, saved.id,
                    new_values=saved.to_snapshot(), actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "production_order_created",
                extra={
                    "order_number": saved.order_number,
                    "bom_id": str(bom_id),
                    "quantity_to_produce": str(qty),
                },
            )
        return saved

    def update(
        self,
        order_id: UUID,
        *,
        actor: ActorContext,
        quantity_to_produce: ScaledInput | None = None,
        planned_start_date: date | None = None,
        planned_completion_date: date | None = None,
        notes: str | None = None,
    ) -> ProductionOrder:
        """
        Edit a planned or reserved order.

        Once components are reserved the quantity is fixed; cancel and
        re-plan to change it.
        """
        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            qty = order.quantity_to_produce
            if quantity_to_produce is not None:
                qty = ScaledDecimal.of(quantity_to_produce, QUANTITY_SCALE)
                if qty != order.quantity_to_produce and order.status is not ProductionStatus.PLANNED:
                    raise ValidationFailedError(
                        ENTITY, order.id, ["quantity is fixed once components are reserved"]
                    )
            start = planned_start_date or order.planned_start_date
            finish = planned_completion_date or order.planned_completion_date
            violations = self._plan_violations(self._require_bom(uow, order), qty, start, finish)
            if violations:
                raise ValidationFailedError(ENTITY, order.id, violations)
            return replace(
                order,
                quantity_to_produce=qty,
                planned_start_date=start,
                planned_completion_date=finish,
                notes=order.notes if notes is None else notes,
            )

        return self._transition(order_id, "update", ActivityAction.UPDATE, actor, change)

    def get(self, order_id: UUID, include_deleted: bool = False) -> ProductionOrder:
        with self._uow_factory() as uow:
            order = uow.production_orders.get(order_id, include_deleted=include_deleted)
        if order is None:
            raise EntityNotFoundError(ENTITY, order_id)
        return order

    def list_by_status(self, status: ProductionStatus) -> list[ProductionOrder]:
        with self._uow_factory() as uow:
            return uow.production_orders.list_by_status(status)

    def list_for_bom(self, bom_id: UUID) -> list[ProductionOrder]:
        with self._uow_factory() as uow:
            return uow.production_orders.list_for_bom(bom_id)

    def list_overdue(self, as_of: date | None = None) -> list[ProductionOrder]:
        """Open orders whose planned completion date is before ``as_of`` (default today)."""
        today = as_of or self._clock.today()
        with self._uow_factory() as uow:
            candidates = [
                order
                for status in OPEN_STATUSES
                for order in uow.production_orders.list_by_status(status)
            ]
        return sorted(
            (
                o for o in candidates
                if o.planned_completion_date is not None and o.planned_completion_date < today
            ),
            key=lambda o: (o.planned_completion_date, o.order_number),
        )

    def explode(self, order_id: UUID) -> BomExplosion:
        """Component requirements and costs for the order's full quantity."""
        with self._uow_factory() as uow:
            order = uow.production_orders.get(order_id)
            if order is None:
                raise EntityNotFoundError(ENTITY, order_id)
            bom = self._require_bom(uow, order)
            costs = component_costs(uow, bom)
        return self._engine.explode(
            bom, quantity_to_produce=order.quantity_to_produce, component_costs=costs
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reserve_components(self, order_id: UUID, *, actor: ActorContext) -> ProductionOrder:
        """
        Reserve every component for the full quantity in the source warehouse.

        All shortages are reported together as one ValidationFailedError;
        nothing is reserved unless everything is.
        """
        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            if order.source_warehouse_id is None:
                raise ValidationFailedError(
                    ENTITY, order.id, ["a source warehouse is required to reserve components"]
                )
            bom = self._require_bom(uow, order)
            shortages = self._shortages(uow, bom, order)
            if shortages:
                logger.warning(
                    "production_order_component_shortage",
                    extra={"order_id": str(order.id), "shortages": list(shortages)},
                )
                raise ValidationFailedError(ENTITY, order.id, shortages)

            explosion = self._engine.explode(bom, quantity_to_produce=order.quantity_to_produce)
            self._lock_locations(uow, order, bom.component_ids, actor, output=False)
            reservations = []
            for component_id in sorted(bom.component_ids, key=str):
                quantity = explosion.requirement_for(component_id)
                if not quantity.is_positive:
                    continue
                self._ledger.reserve_in(
                    uow, component_id, order.source_warehouse_id, quantity, actor=actor
                )
                reservations.append(ComponentReservation(component_id, quantity))
            return replace(order, status=ProductionStatus.RESERVED, reservations=tuple(reservations))

        return self._transition(order_id, "reserve", ActivityAction.RESERVE, actor, change)

    def start(self, order_id: UUID, *, actor: ActorContext) -> ProductionOrder:
        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            return replace(order, status=ProductionStatus.IN_PROGRESS, started_at=self._clock.now())

        return self._transition(order_id, "start", ActivityAction.START, actor, change)

    def record_production(
        self,
        order_id: UUID,
        quantity: ScaledInput,
        *,
        actor: ActorContext,
        notes: str | None = None,
    ) -> ProductionOrder:
        """
        Record ``quantity`` finished units.

        Consumes the components for ``quantity`` from the source warehouse
        (drawing on the reservations first), posts the output to the
        destination warehouse at the BOM's unit cost, and moves the order
        to ``partially_completed`` or ``completed``.
        """
        qty = ScaledDecimal.of(quantity, QUANTITY_SCALE)

        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            if not qty.is_positive:
                raise ValidationFailedError(ENTITY, order.id, ["production quantity must be positive"])
            return self._produce(uow, order, qty, actor, notes)

        return self._transition(
            order_id, "record_production", ActivityAction.RECORD_PRODUCTION, actor, change
        )

    def complete(
        self,
        order_id: UUID,
        *,
        actor: ActorContext,
        quantity_produced: ScaledInput | None = None,
        notes: str | None = None,
    ) -> ProductionOrder:
        """
        Finish an order.

        ``quantity_produced`` is the final total (default: the full
        quantity to produce).  Output not yet recorded is recorded now; a
        total below the target completes the order short and releases the
        unused reservations.
        """
        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            final = (
                order.quantity_to_produce if quantity_produced is None
                else ScaledDecimal.of(quantity_produced, QUANTITY_SCALE)
            )
            if final < order.quantity_produced:
                raise ValidationFailedError(
                    ENTITY, order.id,
                    [f"final quantity {final} is below quantity already produced {order.quantity_produced}"],
                )
            outstanding = final.sub(order.quantity_produced, QUANTITY_SCALE)
            if outstanding.is_positive:
                order = self._produce(uow, order, outstanding, actor, notes)
            if order.status is not ProductionStatus.COMPLETED:
                order = self._finish(uow, order, actor)
            return order

        return self._transition(order_id, "complete", ActivityAction.COMPLETE, actor, change)

    def cancel(
        self, order_id: UUID, *, actor: ActorContext, reason: str | None = None
    ) -> ProductionOrder:
        """Cancel an open order; its remaining reservations are released."""
        def change(uow: UnitOfWork, order: ProductionOrder) -> ProductionOrder:
            released = self._release_all(uow, order, actor)
            return replace(
                released,
                status=ProductionStatus.CANCELLED,
                cancellation_reason=reason,
                cancelled_at=self._clock.now(),
            )

        return self._transition(order_id, "cancel", ActivityAction.CANCEL, actor, change)

    def close(self, order_id: UUID, *, actor: ActorContext) -> ProductionOrder:
        return self._transition(
            order_id, "close", ActivityAction.CLOSE, actor,
            lambda uow, order: replace(order, status=ProductionStatus.CLOSED),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _produce(
        self,
        uow: UnitOfWork,
        order: ProductionOrder,
        qty: ScaledDecimal,
        actor: ActorContext,
        notes: str | None,
    ) -> ProductionOrder:
        new_produced = order.quantity_produced.add(qty, QUANTITY_SCALE)
        if new_produced > order.quantity_to_produce:
            logger.warning(
                "production_order_over_production_rejected",
                extra={
                    "quantity_to_produce": str(order.quantity_to_produce),
                    "quantity_produced": str(order.quantity_produced),
                    "attempted": str(qty),
                },
            )
            raise OverProductionError(
                order.id, order.quantity_to_produce, order.quantity_produced, qty
            )
        bom = self._require_bom(uow, order)
        costs = component_costs(uow, bom)
        explosion = self._engine.explode(bom, quantity_to_produce=qty, component_costs=costs)
        source = SourceReference(SOURCE_TYPE, order.id)
        memo = notes or f"Production {order.order_number}"
        self._lock_locations(uow, order, bom.component_ids, actor, output=True)

        reservations = {r.component_id: r.quantity for r in order.reservations}
        if order.source_warehouse_id is not None:
            for component_id in sorted(bom.component_ids, key=str):
                required = explosion.requirement_for(component_id)
                if not required.is_positive:
                    continue
                reserved = reservations.get(component_id, ScaledDecimal.zero(QUANTITY_SCALE))
                drawn = required if required < reserved else reserved
                if drawn.is_positive:
                    self._ledger.release_reservation_in(
                        uow, component_id, order.source_warehouse_id, drawn, actor=actor
                    )
                    reservations[component_id] = reserved.sub(drawn, QUANTITY_SCALE)
                self._ledger.apply_delta_in(
                    uow, component_id, order.source_warehouse_id, required.negate(),
                    MovementReason.PRODUCTION_CONSUMPTION,
                    actor=actor, source=source, notes=memo,
                )

        if order.destination_warehouse_id is not None:
            cost = self._engine.total_cost(bom, costs)
            self._ledger.apply_delta_in(
                uow, order.product_id, order.destination_warehouse_id, qty,
                MovementReason.PRODUCTION_OUTPUT,
                actor=actor,
                unit_cost=None if cost.has_unknown_costs else cost.unit_cost,
                source=source,
                notes=memo,
            )

        produced = replace(
            order,
            quantity_produced=new_produced,
            reservations=tuple(
                ComponentReservation(cid, quantity)
                for cid, quantity in reservations.items() if quantity.is_positive
            ),
        )
        status = produced.status_after_output()
        if status.value not in self._workflow.target_states(order.status.value, "record_production"):
            raise InvalidTransitionError(ENTITY, order.id, "record_production", order.status.value)
        logger.info(
            "production_recorded",
            extra={
                "quantity": str(qty),
                "quantity_produced": str(new_produced),
                "status": status.value,
            },
        )
        if status is ProductionStatus.COMPLETED:
            return self._finish(uow, produced, actor)
        return replace(produced, status=status)

    def _finish(self, uow: UnitOfWork, order: ProductionOrder, actor: ActorContext) -> ProductionOrder:
        released = self._release_all(uow, order, actor)
        return replace(released, status=ProductionStatus.COMPLETED, completed_at=self._clock.now())

    def _release_all(
        self, uow: UnitOfWork, order: ProductionOrder, actor: ActorContext
    ) -> ProductionOrder:
        if not order.reservations:
            return order
        for reservation in sorted(order.reservations, key=lambda r: str(r.component_id)):
            self._ledger.release_reservation_in(
                uow, reservation.component_id, order.source_warehouse_id,
                reservation.quantity, actor=actor,
            )
        logger.info(
            "production_order_reservations_released",
            extra={"component_count": len(order.reservations)},
        )
        return replace(order, reservations=())

    def _lock_locations(
        self,
        uow: UnitOfWork,
        order: ProductionOrder,
        component_ids,
        actor: ActorContext,
        output: bool,
    ) -> None:
        keys = set()
        if order.source_warehouse_id is not None:
            keys.update((cid, order.source_warehouse_id) for cid in component_ids)
        if output and order.destination_warehouse_id is not None:
            keys.add((order.product_id, order.destination_warehouse_id))
        for product_id, warehouse_id in sorted(keys, key=lambda k: (str(k[0]), str(k[1]))):
            uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)

    def _shortages(
        self, uow: UnitOfWork, bom: BillOfMaterials, order: ProductionOrder
    ) -> tuple[str, ...]:
        available = {}
        for component_id in bom.component_ids:
            available[component_id] = ScaledDecimal.sum_of(
                (
                    loc.available_quantity
                    for loc in uow.stock_locations.list_for_product(component_id)
                    if loc.warehouse_id == order.source_warehouse_id
                ),
                QUANTITY_SCALE,
            )
        products = uow.products.get_many(bom.component_ids)
        labels = {pid: f"{p.name} ({p.sku})" for pid, p in products.items()}
        return self._engine.check_availability(bom, order.quantity_to_produce, available, labels)

    @staticmethod
    def _plan_violations(
        bom: BillOfMaterials,
        quantity: ScaledDecimal,
        start: date | None,
        finish: date | None,
    ) -> list[str]:
        violations = []
        if not bom.is_active:
            violations.append("bill of materials must be active")
        if not bom.active_lines:
            violations.append("bill of materials has no active lines")
        if not quantity.is_positive:
            violations.append("quantity to produce must be positive")
        if start is not None and finish is not None and start > finish:
            violations.append("planned start date is after planned completion date")
        return violations

    def _transition(
        self,
        order_id: UUID,
        action: str,
        activity: ActivityAction,
        actor: ActorContext,
        change: Callable[[UnitOfWork, ProductionOrder], ProductionOrder],
    ) -> ProductionOrder:
        with action_scope(actor, ENTITY, order_id, action):
            with self._uow_factory() as uow:
                order = self._load_for_update(uow, order_id)
                self._require_transition(order, action)
                saved = uow.production_orders.save(change(uow, order), actor.actor_id)
                uow.activity.record(
                    activity, ENTITY, order_id,
                    old_values=order.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "production_order_transitioned",
                extra={"from_status": order.status.value, "to_status": saved.status.value},
            )
        return saved

    def _require_transition(self, order: ProductionOrder, action: str) -> None:
        if self._workflow.allows(order.status.value, action):
            return
        logger.warning(
            "production_order_invalid_transition",
            extra={
                "order_id": str(order.id),
                "attempted_action": action,
                "status": order.status.value,
            },
        )
        raise InvalidTransitionError(ENTITY, order.id, action, order.status.value)

    def _order_number(self, order_id: UUID) -> str:
        stamp = self._clock.today().strftime("%Y%m%d")
        return f"{self._config.production_number_prefix}-{stamp}-{str(order_id)[:8].upper()}"

    @staticmethod
    def _require_bom(uow: UnitOfWork, order: ProductionOrder) -> BillOfMaterials:
        bom = uow.boms.get(order.bom_id, include_deleted=True)
        if bom is None:
            raise EntityNotFoundError("BillOfMaterials", order.bom_id)
        return bom

    @staticmethod
    def _load_for_update(uow: UnitOfWork, order_id: UUID) -> ProductionOrder:
        order = uow.production_orders.get_for_update(order_id)
        if order is None or order.is_deleted:
            raise EntityNotFoundError(ENTITY, order_id)
        return order

"""
StockLedger -- per (product, warehouse) stock quantities.

Responsibility:
    Applies on-hand deltas under each warehouse's negative-stock policy,
    keeps reserved and ordered quantities, maintains the moving average
    cost, appends a movement for every on-hand change, and values stock.

Architecture position:
    Modules > Stock.  Called directly by callers and, through the ``*_in``
    variants, by the purchase order workflow and the catalog inside their
    own unit of work.

Invariants enforced:
    - ``quantity_on_hand`` never goes below zero at a committed point
      unless the warehouse allows negative stock.  A rejected delta
      leaves no trace: the unit of work is rolled back.
    - Each location is mutated under its row lock; read-modify-write of
      quantities cannot lose updates.
    - Locations touched together are locked in sorted key order.
    - ``quantity_reserved`` and ``quantity_ordered`` never go negative.

Failure modes:
    - ValidationFailedError: zero delta, non-positive quantity, transfer
      to the same warehouse, negative physical count.
    - NegativeStockRejectedError: delta would make on-hand negative where
      the warehouse disallows it.
    - InsufficientAvailableStockError / ReservationUnderflowError.
    - EntityNotFoundError: unknown warehouse or product.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID, uuid4

from inventory_engines.stock_valuation import StockValuation, value_stock, weighted_average_cost
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.values import MONEY_SCALE, QUANTITY_SCALE, ScaledDecimal, ScaledInput
from inventory_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientAvailableStockError,
    NegativeStockRejectedError,
    ReservationUnderflowError,
    ValidationFailedError,
)
from inventory_kernel.logging_config import action_scope, get_logger
from inventory_kernel.models.activity_log import ActivityAction
from inventory_modules.stock.config import StockConfig
from inventory_modules.stock.models import (
    MovementReason,
    SourceReference,
    StockDeltaResult,
    StockLocation,
    StockMovement,
    Warehouse,
)

if TYPE_CHECKING:
    from inventory_services.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = get_logger("modules.stock.service")

LOCATION = "StockLocation"
WAREHOUSE = "Warehouse"
PRODUCT = "Product"


class StockLedger:
    """
    Stock quantities and movements.

    Public methods without the ``_in`` suffix open and commit their own
    unit of work.  The ``_in`` variants run inside the caller's unit and
    never commit.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config: StockConfig | None = None,
        clock: Clock | None = None,
    ):
        self._uow_factory = uow_factory
        self._config = config or StockConfig.with_defaults()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> StockConfig:
        return self._config

    # ------------------------------------------------------------------
    # Warehouses
    # ------------------------------------------------------------------

    def register_warehouse(
        self,
        code: str,
        name: str,
        *,
        actor: ActorContext,
        settings: Mapping[str, Any] | None = None,
        warehouse_id: UUID | None = None,
    ) -> Warehouse:
        warehouse = Warehouse(
            id=warehouse_id or uuid4(), code=code, name=name, settings=dict(settings or {})
        )
        with action_scope(actor, WAREHOUSE, warehouse.id, "register_warehouse"):
            with self._uow_factory() as uow:
                if uow.warehouses.find_by_code(code) is not None:
                    raise ValidationFailedError(
                        WAREHOUSE, warehouse.id, [f"warehouse code '{code}' is already in use"]
                    )
                saved = uow.warehouses.save(warehouse, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CREATE, WAREHOUSE, saved.id,
                    new_values=saved.to_snapshot(), actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info("warehouse_registered", extra={"warehouse_id": str(saved.id), "code": code})
        return saved

    def update_warehouse_settings(
        self, warehouse_id: UUID, settings: Mapping[str, Any], *, actor: ActorContext
    ) -> Warehouse:
        """Merge ``settings`` into the warehouse settings map."""
        with action_scope(actor, WAREHOUSE, warehouse_id, "update_warehouse_settings"):
            with self._uow_factory() as uow:
                warehouse = uow.warehouses.get_for_update(warehouse_id)
                if warehouse is None or warehouse.is_deleted:
                    raise EntityNotFoundError(WAREHOUSE, warehouse_id)
                merged = {**warehouse.settings, **settings}
                saved = uow.warehouses.save(replace(warehouse, settings=merged), actor.actor_id)
                uow.activity.record(
                    ActivityAction.UPDATE, WAREHOUSE, warehouse_id,
                    old_values=warehouse.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "warehouse_settings_updated",
                extra={"warehouse_id": str(warehouse_id), "settings_keys": sorted(settings)},
            )
        return saved

    def get_warehouse(self, warehouse_id: UUID) -> Warehouse:
        with self._uow_factory() as uow:
            return self._require_warehouse(uow, warehouse_id)

    # ------------------------------------------------------------------
    # On-hand deltas
    # ------------------------------------------------------------------

    def apply_delta(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        delta: ScaledInput,
        reason: MovementReason = MovementReason.ADJUSTMENT,
        *,
        actor: ActorContext,
        unit_cost: ScaledInput | None = None,
        source: SourceReference | None = None,
        notes: str | None = None,
    ) -> StockDeltaResult:
        """
        Add ``delta`` (signed) to on-hand stock.

        Get-or-creates the location, rejects the whole call with
        NegativeStockRejectedError if on-hand would go below zero in a
        warehouse that disallows it, otherwise commits the new quantity,
        a movement and an activity record together.
        """
        with action_scope(actor, PRODUCT, product_id, "apply_delta"):
            with self._uow_factory() as uow:
                result = self.apply_delta_in(
                    uow, product_id, warehouse_id, delta, reason,
                    actor=actor, unit_cost=unit_cost, source=source, notes=notes,
                )
                uow.commit()
        return result

    def apply_delta_in(
        self,
        uow: UnitOfWork,
        product_id: UUID,
        warehouse_id: UUID,
        delta: ScaledInput,
        reason: MovementReason,
        *,
        actor: ActorContext,
        unit_cost: ScaledInput | None = None,
        source: SourceReference | None = None,
        notes: str | None = None,
        action: ActivityAction = ActivityAction.STOCK_DELTA,
    ) -> StockDeltaResult:
        """``apply_delta`` inside the caller's unit of work."""
        delta = ScaledDecimal.of(delta, QUANTITY_SCALE)
        if delta.is_zero:
            raise ValidationFailedError(LOCATION, None, ["stock delta cannot be zero"])
        logger.info(
            "stock_delta_started",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "delta": str(delta),
                "reason": reason.value,
            },
        )
        warehouse = self._require_warehouse(uow, warehouse_id)
        location = uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)
        return self._post(
            uow, warehouse, location, delta, reason,
            actor=actor, unit_cost=unit_cost, source=source, notes=notes, action=action,
        )

    def transfer(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: ScaledInput,
        *,
        actor: ActorContext,
        notes: str | None = None,
    ) -> tuple[StockDeltaResult, StockDeltaResult]:
        """
        Move stock between warehouses in one unit of work.

        The destination receives the source's average cost.  Returns the
        (outgoing, incoming) results.
        """
        qty = ScaledDecimal.of(quantity, QUANTITY_SCALE)
        violations = []
        if not qty.is_positive:
            violations.append("transfer quantity must be positive")
        if from_warehouse_id == to_warehouse_id:
            violations.append("source and destination warehouse must differ")
        if violations:
            raise ValidationFailedError(LOCATION, None, violations)

        with action_scope(actor, PRODUCT, product_id, "transfer"):
            with self._uow_factory() as uow:
                source_wh = self._require_warehouse(uow, from_warehouse_id)
                dest_wh = self._require_warehouse(uow, to_warehouse_id)
                locked = self._lock_in_order(uow, product_id, [from_warehouse_id, to_warehouse_id], actor)
                source = locked[from_warehouse_id]
                if source.available_quantity < qty and not self._allows_negative(source_wh):
                    logger.warning(
                        "stock_transfer_insufficient",
                        extra={
                            "product_id": str(product_id),
                            "warehouse_id": str(from_warehouse_id),
                            "available": str(source.available_quantity),
                            "requested": str(qty),
                        },
                    )
                    raise InsufficientAvailableStockError(
                        product_id, from_warehouse_id, source.available_quantity, qty
                    )
                outgoing = self._post(
                    uow, source_wh, source, qty.negate(), MovementReason.TRANSFER_OUT,
                    actor=actor, notes=notes, action=ActivityAction.TRANSFER,
                )
                incoming = self._post(
                    uow, dest_wh, locked[to_warehouse_id], qty, MovementReason.TRANSFER_IN,
                    actor=actor, unit_cost=source.average_cost, notes=notes,
                    action=ActivityAction.TRANSFER,
                )
                uow.commit()
            logger.info(
                "stock_transferred",
                extra={
                    "product_id": str(product_id),
                    "from_warehouse_id": str(from_warehouse_id),
                    "to_warehouse_id": str(to_warehouse_id),
                    "quantity": str(qty),
                },
            )
        return outgoing, incoming

    def record_physical_count(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        counted: ScaledInput,
        *,
        actor: ActorContext,
        notes: str | None = None,
    ) -> StockDeltaResult:
        """Set on-hand to ``counted``, posting the difference as a movement."""
        counted = ScaledDecimal.of(counted, QUANTITY_SCALE)
        if counted.is_negative:
            raise ValidationFailedError(LOCATION, None, ["counted quantity cannot be negative"])

        with action_scope(actor, PRODUCT, product_id, "physical_count"):
            with self._uow_factory() as uow:
                warehouse = self._require_warehouse(uow, warehouse_id)
                location = uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)
                difference = counted.sub(location.quantity_on_hand, QUANTITY_SCALE)
                now = self._clock.now()
                if difference.is_zero:
                    saved = uow.stock_locations.save(replace(location, last_count_at=now), actor.actor_id)
                    uow.activity.record(
                        ActivityAction.PHYSICAL_COUNT, LOCATION, saved.id,
                        old_values=location.to_snapshot(), new_values=saved.to_snapshot(),
                        actor=actor, context={**actor.as_context(), "difference": str(difference)},
                    )
                    result = StockDeltaResult(location=saved, previous=location)
                else:
                    result = self._post(
                        uow, warehouse, location, difference, MovementReason.PHYSICAL_COUNT,
                        actor=actor, notes=notes or "Physical count adjustment",
                        action=ActivityAction.PHYSICAL_COUNT, counted_at=now,
                    )
                uow.commit()
            logger.info(
                "physical_count_recorded",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "counted": str(counted),
                    "difference": str(difference),
                },
            )
        return result

    # ------------------------------------------------------------------
    # Reserved and ordered quantities
    # ------------------------------------------------------------------

    def reserve(
        self, product_id: UUID, warehouse_id: UUID, quantity: ScaledInput, *, actor: ActorContext
    ) -> StockLocation:
        """Earmark available stock for an outgoing commitment."""
        with action_scope(actor, PRODUCT, product_id, "reserve"):
            with self._uow_factory() as uow:
                saved = self.reserve_in(uow, product_id, warehouse_id, quantity, actor=actor)
                uow.commit()
        return saved

    def reserve_in(
        self,
        uow: UnitOfWork,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: ScaledInput,
        *,
        actor: ActorContext,
    ) -> StockLocation:
        """``reserve`` inside the caller's unit of work."""
        qty = self._positive(quantity, "reservation quantity")
        warehouse = self._require_warehouse(uow, warehouse_id)
        location = uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)
        if location.available_quantity < qty and not self._allows_negative(warehouse):
            logger.warning(
                "stock_reservation_rejected",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "available": str(location.available_quantity),
                    "requested": str(qty),
                },
            )
            raise InsufficientAvailableStockError(
                product_id, warehouse_id, location.available_quantity, qty
            )
        saved = self._save_quantity(
            uow, location, ActivityAction.RESERVE, actor,
            quantity_reserved=location.quantity_reserved.add(qty, QUANTITY_SCALE),
        )
        logger.info(
            "stock_reserved",
            extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id), "quantity": str(qty)},
        )
        return saved

    def release_reservation(
        self, product_id: UUID, warehouse_id: UUID, quantity: ScaledInput, *, actor: ActorContext
    ) -> StockLocation:
        with action_scope(actor, PRODUCT, product_id, "release_reservation"):
            with self._uow_factory() as uow:
                saved = self.release_reservation_in(
                    uow, product_id, warehouse_id, quantity, actor=actor
                )
                uow.commit()
        return saved

    def release_reservation_in(
        self,
        uow: UnitOfWork,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: ScaledInput,
        *,
        actor: ActorContext,
    ) -> StockLocation:
        qty = self._positive(quantity, "release quantity")
        self._require_warehouse(uow, warehouse_id)
        location = uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)
        if location.quantity_reserved < qty:
            raise ReservationUnderflowError(
                product_id, warehouse_id, location.quantity_reserved, qty
            )
        saved = self._save_quantity(
            uow, location, ActivityAction.RELEASE_RESERVATION, actor,
            quantity_reserved=location.quantity_reserved.sub(qty, QUANTITY_SCALE),
        )
        logger.info(
            "stock_reservation_released",
            extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id), "quantity": str(qty)},
        )
        return saved

    def adjust_ordered_in(
        self,
        uow: UnitOfWork,
        product_id: UUID,
        warehouse_id: UUID,
        delta: ScaledInput,
        *,
        actor: ActorContext,
    ) -> StockLocation:
        """
        Add ``delta`` to the incoming (ordered) quantity.

        A release larger than the tracked quantity stops at zero; orders
        placed while tracking was off were never added.
        """
        delta = ScaledDecimal.of(delta, QUANTITY_SCALE)
        location = uow.stock_locations.lock_or_create(product_id, warehouse_id, actor.actor_id)
        if delta.is_zero:
            return location
        new_ordered = location.quantity_ordered.add(delta, QUANTITY_SCALE)
        if new_ordered.is_negative:
            logger.debug(
                "stock_ordered_release_clamped",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "quantity_ordered": str(location.quantity_ordered),
                    "delta": str(delta),
                },
            )
            new_ordered = ScaledDecimal.zero(QUANTITY_SCALE)
        return self._save_quantity(
            uow, location, ActivityAction.ORDERED_ADJUSTMENT, actor, quantity_ordered=new_ordered
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def stock_level(self, product_id: UUID, warehouse_id: UUID) -> StockLocation | None:
        """The location for the pair, or None if stock was never touched there."""
        with self._uow_factory() as uow:
            return uow.stock_locations.get(product_id, warehouse_id)

    def locations_for_product(self, product_id: UUID) -> list[StockLocation]:
        with self._uow_factory() as uow:
            return uow.stock_locations.list_for_product(product_id)

    def movements_for_product(
        self, product_id: UUID, warehouse_id: UUID | None = None
    ) -> list[StockMovement]:
        with self._uow_factory() as uow:
            return uow.stock_movements.list_for_product(product_id, warehouse_id)

    def total_stock_value(self, product_id: UUID) -> StockValuation:
        """
        ``on_hand * cost_price`` summed across warehouses, with breakdown.

        Without a cost price the value is unknown (None), not zero.
        """
        with self._uow_factory() as uow:
            product = uow.products.get(product_id, include_deleted=True)
            if product is None:
                raise EntityNotFoundError("Product", product_id)
            locations = uow.stock_locations.list_for_product(product_id)
        valuation = value_stock(
            product_id,
            product.cost_price,
            [(loc.warehouse_id, loc.quantity_on_hand, loc.average_cost) for loc in locations],
        )
        logger.debug(
            "stock_valued",
            extra={
                "product_id": str(product_id),
                "warehouse_count": len(locations),
                "value_known": valuation.is_value_known,
            },
        )
        return valuation

    def can_delete(self, product_id: UUID) -> bool:
        with self._uow_factory() as uow:
            return self.can_delete_in(uow, product_id)

    def can_delete_in(self, uow: UnitOfWork, product_id: UUID) -> bool:
        """
        True only if total on-hand is exactly zero and no movement for the
        product falls inside the lookback window.
        """
        locations = uow.stock_locations.list_for_product(product_id)
        total = ScaledDecimal.sum_of((loc.quantity_on_hand for loc in locations), QUANTITY_SCALE)
        if not total.is_zero:
            return False
        since = self._clock.now() - timedelta(days=self._config.movement_lookback_days)
        return uow.stock_movements.count_since(product_id, since) == 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _post(
        self,
        uow: UnitOfWork,
        warehouse: Warehouse,
        location: StockLocation,
        delta: ScaledDecimal,
        reason: MovementReason,
        *,
        actor: ActorContext,
        unit_cost: ScaledInput | None = None,
        source: SourceReference | None = None,
        notes: str | None = None,
        action: ActivityAction = ActivityAction.STOCK_DELTA,
        counted_at=None,
    ) -> StockDeltaResult:
        """Apply ``delta`` to a location already locked by this unit of work."""
        new_on_hand = location.quantity_on_hand.add(delta, QUANTITY_SCALE)
        if new_on_hand.is_negative and not self._allows_negative(warehouse):
            logger.warning(
                "negative_stock_rejected",
                extra={
                    "product_id": str(location.product_id),
                    "warehouse_id": str(location.warehouse_id),
                    "quantity_on_hand": str(location.quantity_on_hand),
                    "delta": str(delta),
                },
            )
            raise NegativeStockRejectedError(
                location.product_id, location.warehouse_id, location.quantity_on_hand, delta
            )

        cost = ScaledDecimal.of(unit_cost, MONEY_SCALE) if unit_cost is not None else None
        average_cost = location.average_cost
        if self._config.track_average_cost and cost is not None and delta.is_positive:
            average_cost = weighted_average_cost(
                location.quantity_on_hand, location.average_cost, delta, cost
            )

        now = self._clock.now()
        changes = {
            "quantity_on_hand": new_on_hand,
            "average_cost": average_cost,
            "last_movement_at": now,
        }
        if counted_at is not None:
            changes["last_count_at"] = counted_at
        saved = uow.stock_locations.save(replace(location, **changes), actor.actor_id)

        movement = uow.stock_movements.append(
            StockMovement(
                id=uuid4(),
                product_id=location.product_id,
                warehouse_id=location.warehouse_id,
                quantity=delta,
                reason=reason,
                occurred_at=now,
                unit_cost=cost,
                source=source,
                notes=notes,
                actor_id=actor.actor_id,
            )
        )
        context = {**actor.as_context(), "reason": reason.value, "delta": str(delta)}
        if source is not None:
            context["source_type"] = source.source_type
            context["source_id"] = str(source.source_id)
        uow.activity.record(
            action, LOCATION, saved.id,
            old_values=location.to_snapshot(), new_values=saved.to_snapshot(),
            actor=actor, context=context,
        )
        logger.info(
            "stock_delta_applied",
            extra={
                "product_id": str(location.product_id),
                "warehouse_id": str(location.warehouse_id),
                "delta": str(delta),
                "quantity_on_hand": str(new_on_hand),
                "reason": reason.value,
            },
        )
        return StockDeltaResult(location=saved, previous=location, movement=movement)

    def _save_quantity(
        self, uow: UnitOfWork, location: StockLocation, action: ActivityAction,
        actor: ActorContext, **changes,
    ) -> StockLocation:
        saved = uow.stock_locations.save(replace(location, **changes), actor.actor_id)
        uow.activity.record(
            action, LOCATION, saved.id,
            old_values=location.to_snapshot(), new_values=saved.to_snapshot(),
            actor=actor, context=actor.as_context(),
        )
        return saved

    def _lock_in_order(
        self, uow: UnitOfWork, product_id: UUID, warehouse_ids, actor: ActorContext
    ) -> dict[UUID, StockLocation]:
        locked = {}
        for warehouse_id in sorted(set(warehouse_ids), key=str):
            locked[warehouse_id] = uow.stock_locations.lock_or_create(
                product_id, warehouse_id, actor.actor_id
            )
        return locked

    def _allows_negative(self, warehouse: Warehouse) -> bool:
        return warehouse.allows_negative_stock(self._config.default_allow_negative_stock)

    @staticmethod
    def _positive(value: ScaledInput, label: str) -> ScaledDecimal:
        qty = ScaledDecimal.of(value, QUANTITY_SCALE)
        if not qty.is_positive:
            raise ValidationFailedError(LOCATION, None, [f"{label} must be positive"])
        return qty

    @staticmethod
    def _require_warehouse(uow: UnitOfWork, warehouse_id: UUID) -> Warehouse:
        warehouse = uow.warehouses.get(warehouse_id)
        if warehouse is None:
            raise EntityNotFoundError(WAREHOUSE, warehouse_id)
        return warehouse

"""
BomService -- editing and exploding bills of materials.

Responsibility:
    Creates and edits BOMs (header, line set, single lines), manages the
    active flag and soft deletion, clones a BOM into a new revision, and
    runs the ``BomExplosionEngine`` against stored BOMs with component
    cost prices and stock levels looked up from the catalog and ledger.

Architecture position:
    Modules > Manufacturing.  Pure arithmetic lives in
    ``inventory_engines.bom_explosion``; this service only loads, checks
    and saves.

Invariants enforced:
    - ``quantity_produced > 0`` on every saved BOM, so the engine never
      divides by zero.
    - Every active line has ``quantity_required > 0``, a waste factor in
      [0, max_waste_factor] and ``sequence > 0``.
    - At most one active line per (BOM, component).
    - Deleting a BOM soft-deletes its lines with it.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Iterable
from uuid import UUID, uuid4

from inventory_engines.bom_explosion import BomCostSummary, BomExplosion, BomExplosionEngine
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import QUANTITY_SCALE, ScaledDecimal, ScaledInput
from inventory_kernel.exceptions import EntityNotFoundError, ValidationFailedError
from inventory_kernel.logging_config import action_scope, get_logger
from inventory_kernel.models.activity_log import ActivityAction
from inventory_modules.manufacturing.config import ManufacturingConfig
from inventory_modules.manufacturing.models import BillOfMaterials, BomLine, BomLineInput

if TYPE_CHECKING:
    from inventory_services.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = get_logger("modules.manufacturing.service")

ENTITY = "BillOfMaterials"


def component_costs(uow: UnitOfWork, bom: BillOfMaterials) -> dict[UUID, ScaledDecimal | None]:
    """Current cost price of every component; None where the product is unknown."""
    products = uow.products.get_many(bom.component_ids)
    return {
        cid: products[cid].cost_price if cid in products else None
        for cid in bom.component_ids
    }


class BomService:
    """Bills of materials: editing, lifecycle and explosion."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        engine: BomExplosionEngine | None = None,
        config: ManufacturingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._uow_factory = uow_factory
        self._engine = engine or BomExplosionEngine()
        self._config = config or ManufacturingConfig.with_defaults()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, bom: BillOfMaterials) -> list[str]:
        """Every structural violation of ``bom``; empty when valid."""
        violations = []
        if not bom.quantity_produced.is_positive:
            violations.append("quantity produced must be positive")
        seen: set[UUID] = set()
        for line in bom.active_lines:
            label = f"line {line.sequence}"
            if not line.quantity_required.is_positive:
                violations.append(f"{label}: quantity required must be positive")
            if line.waste_factor.is_negative or line.waste_factor > self._config.max_waste_factor:
                violations.append(
                    f"{label}: waste factor must be between 0 and {self._config.max_waste_factor}"
                )
            if line.sequence <= 0:
                violations.append(f"{label}: sequence must be positive")
            if line.component_id in seen:
                violations.append(f"{label}: component {line.component_id} already has an active line")
            seen.add(line.component_id)
            if (
                self._config.reject_self_referencing_components
                and line.component_id == bom.product_id
            ):
                violations.append(f"{label}: a BOM cannot consume the product it produces")
        return violations

    def _check(self, bom: BillOfMaterials) -> None:
        violations = self.validate(bom)
        if violations:
            logger.warning(
                "bom_validation_failed",
                extra={"bom_id": str(bom.id), "violations": violations},
            )
            raise ValidationFailedError(ENTITY, bom.id, violations)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def create(
        self,
        code: str,
        product_id: UUID,
        quantity_produced: ScaledInput,
        lines: Iterable[BomLineInput] = (),
        *,
        actor: ActorContext,
        notes: str | None = None,
        bom_id: UUID | None = None,
    ) -> BillOfMaterials:
        bom = BillOfMaterials(
            id=bom_id or uuid4(),
            code=code,
            product_id=product_id,
            quantity_produced=quantity_produced,
            notes=notes,
        )
        bom = replace(bom, lines=self._build_lines(lines, start=1))
        self._check(bom)
        with action_scope(actor, ENTITY, bom.id, "create"):
            with self._uow_factory() as uow:
                if uow.boms.find_by_code(code) is not None:
                    raise ValidationFailedError(ENTITY, bom.id, [f"BOM code '{code}' is already in use"])
                saved = uow.boms.save(bom, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CREATE, ENTITY, saved.id,
                    new_values=saved.to_snapshot(), actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "bom_created",
                extra={"bom_id": str(saved.id), "code": code, "line_count": len(saved.active_lines)},
            )
        return saved

    def get(self, bom_id: UUID, include_deleted: bool = False) -> BillOfMaterials:
        with self._uow_factory() as uow:
            bom = uow.boms.get(bom_id, include_deleted=include_deleted)
        if bom is None:
            raise EntityNotFoundError(ENTITY, bom_id)
        return bom

    def list_for_product(self, product_id: UUID, active_only: bool = False) -> list[BillOfMaterials]:
        with self._uow_factory() as uow:
            return uow.boms.list_for_product(product_id, active_only=active_only)

    def update(
        self,
        bom_id: UUID,
        *,
        actor: ActorContext,
        quantity_produced: ScaledInput | None = None,
        notes: str | None = None,
    ) -> BillOfMaterials:
        """Change header fields; omitted fields keep their value."""
        def change(bom: BillOfMaterials) -> BillOfMaterials:
            return replace(
                bom,
                quantity_produced=(
                    bom.quantity_produced if quantity_produced is None else quantity_produced
                ),
                notes=bom.notes if notes is None else notes,
            )

        return self._mutate(bom_id, actor, ActivityAction.UPDATE, change)

    def update_lines(
        self, bom_id: UUID, lines: Iterable[BomLineInput], *, actor: ActorContext
    ) -> BillOfMaterials:
        """Replace the active line set: remove every line, then add ``lines``."""
        lines = list(lines)

        def change(bom: BillOfMaterials) -> BillOfMaterials:
            removed = self._remove_all(bom.lines)
            return replace(bom, lines=removed + self._build_lines(lines, start=1))

        return self._mutate(bom_id, actor, ActivityAction.UPDATE, change)

    def add_line(self, bom_id: UUID, line: BomLineInput, *, actor: ActorContext) -> BillOfMaterials:
        def change(bom: BillOfMaterials) -> BillOfMaterials:
            return replace(
                bom, lines=bom.lines + self._build_lines([line], start=bom.next_sequence())
            )

        return self._mutate(bom_id, actor, ActivityAction.UPDATE, change)

    def remove_line(self, bom_id: UUID, line_id: UUID, *, actor: ActorContext) -> BillOfMaterials:
        def change(bom: BillOfMaterials) -> BillOfMaterials:
            line = bom.line(line_id)
            if line is None or not line.is_active:
                raise EntityNotFoundError("BomLine", line_id)
            deleted = replace(line, state=RecordState.deleted(self._clock.now()))
            return replace(
                bom, lines=tuple(deleted if ln.id == line_id else ln for ln in bom.lines)
            )

        return self._mutate(bom_id, actor, ActivityAction.UPDATE, change)

    def activate(self, bom_id: UUID, *, actor: ActorContext) -> BillOfMaterials:
        return self._mutate(
            bom_id, actor, ActivityAction.ACTIVATE, lambda bom: replace(bom, is_active=True)
        )

    def deactivate(self, bom_id: UUID, *, actor: ActorContext) -> BillOfMaterials:
        return self._mutate(
            bom_id, actor, ActivityAction.DEACTIVATE, lambda bom: replace(bom, is_active=False)
        )

    def delete(self, bom_id: UUID, *, actor: ActorContext) -> BillOfMaterials:
        """Soft-delete the BOM and all of its lines."""
        def change(bom: BillOfMaterials) -> BillOfMaterials:
            return replace(
                bom,
                lines=self._remove_all(bom.lines),
                is_active=False,
                state=RecordState.deleted(self._clock.now()),
            )

        return self._mutate(bom_id, actor, ActivityAction.DELETE, change, check=False)

    def clone_for_new_version(self, bom_id: UUID, *, actor: ActorContext) -> BillOfMaterials:
        """
        Copy a BOM into revision ``n + 1`` with code ``<code>-V<n+1>``.

        Active lines are copied under new ids; the source is unchanged.
        """
        with action_scope(actor, ENTITY, bom_id, "clone"):
            with self._uow_factory() as uow:
                source = self._load_for_update(uow, bom_id)
                revision = source.revision + 1
                clone = BillOfMaterials(
                    id=uuid4(),
                    code=f"{source.code}-V{revision}",
                    product_id=source.product_id,
                    quantity_produced=source.quantity_produced,
                    lines=tuple(
                        replace(ln, id=uuid4(), state=RecordState.active())
                        for ln in source.active_lines
                    ),
                    revision=revision,
                    notes=source.notes,
                )
                if uow.boms.find_by_code(clone.code) is not None:
                    raise ValidationFailedError(
                        ENTITY, source.id, [f"BOM code '{clone.code}' is already in use"]
                    )
                saved = uow.boms.save(clone, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CLONE, ENTITY, saved.id,
                    new_values=saved.to_snapshot(), actor=actor,
                    context={**actor.as_context(), "source_bom_id": str(source.id)},
                )
                uow.commit()
            logger.info(
                "bom_cloned",
                extra={"source_bom_id": str(bom_id), "bom_id": str(saved.id), "revision": revision},
            )
        return saved

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def explode(self, bom_id: UUID, quantity_to_produce: ScaledInput) -> BomExplosion:
        """Component requirements and costs for producing ``quantity_to_produce``."""
        with self._uow_factory() as uow:
            bom = self._require(uow, bom_id)
            costs = component_costs(uow, bom)
        return self._engine.explode(bom, quantity_to_produce=quantity_to_produce, component_costs=costs)

    def cost_summary(self, bom_id: UUID) -> BomCostSummary:
        """Batch and unit cost at current component cost prices."""
        with self._uow_factory() as uow:
            bom = self._require(uow, bom_id)
            costs = component_costs(uow, bom)
        return self._engine.total_cost(bom, costs)

    def check_availability(
        self,
        bom_id: UUID,
        quantity_to_produce: ScaledInput,
        warehouse_id: UUID | None = None,
    ) -> tuple[str, ...]:
        """
        Shortage messages for producing ``quantity_to_produce``.

        Available stock is summed across warehouses unless
        ``warehouse_id`` narrows it to one.
        """
        with self._uow_factory() as uow:
            bom = self._require(uow, bom_id)
            products = uow.products.get_many(bom.component_ids)
            available = {}
            for component_id in bom.component_ids:
                locations = [
                    loc for loc in uow.stock_locations.list_for_product(component_id)
                    if warehouse_id is None or loc.warehouse_id == warehouse_id
                ]
                available[component_id] = ScaledDecimal.sum_of(
                    (loc.available_quantity for loc in locations), QUANTITY_SCALE
                )
        labels = {pid: f"{p.name} ({p.sku})" for pid, p in products.items()}
        return self._engine.check_availability(bom, quantity_to_produce, available, labels)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(self, bom_id, actor, action, change, check: bool = True) -> BillOfMaterials:
        with action_scope(actor, ENTITY, bom_id, action.value):
            with self._uow_factory() as uow:
                bom = self._load_for_update(uow, bom_id)
                updated = change(bom)
                if check:
                    self._check(updated)
                saved = uow.boms.save(updated, actor.actor_id)
                uow.activity.record(
                    action, ENTITY, bom_id,
                    old_values=bom.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "bom_updated",
                extra={"bom_id": str(bom_id)},
            )
        return saved

    def _build_lines(self, inputs: Iterable[BomLineInput], start: int) -> tuple[BomLine, ...]:
        built = []
        for offset, spec in enumerate(inputs):
            built.append(
                BomLine(
                    id=uuid4(),
                    component_id=spec.component_id,
                    quantity_required=spec.quantity_required,
                    waste_factor=spec.waste_factor,
                    sequence=spec.sequence if spec.sequence is not None else start + offset,
                    notes=spec.notes,
                )
            )
        return tuple(built)

    def _remove_all(self, lines: tuple[BomLine, ...]) -> tuple[BomLine, ...]:
        now = self._clock.now()
        return tuple(
            replace(ln, state=RecordState.deleted(now)) if ln.is_active else ln
            for ln in lines
        )

    @staticmethod
    def _require(uow: UnitOfWork, bom_id: UUID) -> BillOfMaterials:
        bom = uow.boms.get(bom_id)
        if bom is None:
            raise EntityNotFoundError(ENTITY, bom_id)
        return bom

    @staticmethod
    def _load_for_update(uow: UnitOfWork, bom_id: UUID) -> BillOfMaterials:
        bom = uow.boms.get_for_update(bom_id)
        if bom is None or bom.is_deleted:
            raise EntityNotFoundError(ENTITY, bom_id)
        return bom

"""
inventory_engines.bom_explosion -- Bill of materials quantity and cost explosion.

Responsibility:
    Turns a BOM (component lines with required quantity and waste factor,
    plus the declared output quantity) into effective and waste quantities,
    component requirements for a production target, and component costs.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only ``inventory_kernel`` values and exceptions.  Works on any
    object shaped like ``ExplodableBom`` / ``ExplodableLine``.

Invariants enforced:
    - Every figure is a ScaledDecimal; each step truncates at its stated
      scale, in the stated order:
        effective = required * (1 + waste/100 @4) @6
        ratio     = to_produce / produced @6; requirement = effective * ratio @6
        unit      = effective / produced @6; qty = unit * quantity @6;
        cost      = qty * cost_price @4
      The requirement and the cost use different decompositions, which
      are not interchangeable under truncation.
    - ``effective_quantity`` is memoized on the (immutable) line inputs.
    - Unknown component cost stays unknown (``None``), never zero.

Failure modes:
    - DivisionByZeroError if ``quantity_produced`` is zero.  BOM editing
      validates ``quantity_produced > 0``; the engine does not re-check.
    - ValidationFailedError from ``explode`` when the production quantity
      is not positive.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Protocol, Sequence
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.values import (
    MONEY_SCALE,
    QUANTITY_SCALE,
    RATE_SCALE,
    ScaledDecimal,
    ScaledInput,
)
from inventory_kernel.exceptions import ValidationFailedError
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.bom_explosion")

_ONE = ScaledDecimal(1, 0)
_HUNDRED = ScaledDecimal(100, 0)


class ExplodableLine(Protocol):
    id: UUID
    component_id: UUID
    quantity_required: ScaledDecimal
    waste_factor: ScaledDecimal
    sequence: int


class ExplodableBom(Protocol):
    id: UUID
    quantity_produced: ScaledDecimal

    @property
    def active_lines(self) -> Sequence[ExplodableLine]: ...


@lru_cache(maxsize=8192)
def _effective(quantity_required: ScaledDecimal, waste_factor: ScaledDecimal) -> ScaledDecimal:
    multiplier = _ONE.add(waste_factor.div(_HUNDRED, RATE_SCALE), RATE_SCALE)
    return quantity_required.mul(multiplier, QUANTITY_SCALE)


@dataclass(frozen=True)
class ComponentRequirement:
    """What one BOM line needs for a production target."""
    line_id: UUID
    component_id: UUID
    sequence: int
    effective_quantity: ScaledDecimal
    waste_quantity: ScaledDecimal
    required_quantity: ScaledDecimal
    cost_price: ScaledDecimal | None
    cost: ScaledDecimal | None

    @property
    def is_cost_known(self) -> bool:
        return self.cost is not None


@dataclass(frozen=True)
class BomExplosion:
    """Requirements and costs for producing ``quantity_to_produce``."""
    bom_id: UUID
    quantity_to_produce: ScaledDecimal
    ratio: ScaledDecimal
    requirements: tuple[ComponentRequirement, ...]
    known_cost: ScaledDecimal
    unknown_cost_component_ids: tuple[UUID, ...] = ()

    @property
    def has_unknown_costs(self) -> bool:
        return bool(self.unknown_cost_component_ids)

    @property
    def total_cost(self) -> ScaledDecimal | None:
        """Total cost, or None when any component cost is unknown."""
        return None if self.has_unknown_costs else self.known_cost

    def requirement_for(self, component_id: UUID) -> ScaledDecimal:
        return ScaledDecimal.sum_of(
            (r.required_quantity for r in self.requirements if r.component_id == component_id),
            QUANTITY_SCALE,
        )


@dataclass(frozen=True)
class BomCostSummary:
    """Cost of one BOM batch (``quantity_produced`` units)."""
    bom_id: UUID
    known_cost: ScaledDecimal
    unit_cost: ScaledDecimal
    unknown_cost_component_ids: tuple[UUID, ...] = ()

    @property
    def has_unknown_costs(self) -> bool:
        return bool(self.unknown_cost_component_ids)

    @property
    def total_cost(self) -> ScaledDecimal | None:
        return None if self.has_unknown_costs else self.known_cost


class BomExplosionEngine:
    """
    Stateless BOM calculator.

    Contract:
        All methods are pure; the only state is the process-wide memo of
        effective quantities keyed by immutable line inputs.
    """

    def effective_quantity(self, line: ExplodableLine) -> ScaledDecimal:
        """``quantity_required * (1 + waste_factor / 100)`` at scale 6."""
        return _effective(line.quantity_required, line.waste_factor)

    def waste_quantity(self, line: ExplodableLine) -> ScaledDecimal:
        return self.effective_quantity(line).sub(line.quantity_required, QUANTITY_SCALE)

    def production_ratio(self, bom: ExplodableBom, quantity_to_produce: ScaledInput) -> ScaledDecimal:
        return ScaledDecimal.of(quantity_to_produce).div(bom.quantity_produced, QUANTITY_SCALE)

    def required_quantity_for_production(
        self,
        bom: ExplodableBom,
        line: ExplodableLine,
        quantity_to_produce: ScaledInput,
    ) -> ScaledDecimal:
        """Ratio first (scale 6), then ``effective * ratio`` (scale 6)."""
        ratio = self.production_ratio(bom, quantity_to_produce)
        return self.effective_quantity(line).mul(ratio, QUANTITY_SCALE)

    def unit_component_quantity(self, bom: ExplodableBom, line: ExplodableLine) -> ScaledDecimal:
        """Component quantity per produced unit (scale 6)."""
        return self.effective_quantity(line).div(bom.quantity_produced, QUANTITY_SCALE)

    def cost_for_quantity(
        self,
        bom: ExplodableBom,
        line: ExplodableLine,
        quantity: ScaledInput,
        cost_price: ScaledDecimal | None,
    ) -> ScaledDecimal | None:
        """
        Component cost for producing ``quantity`` units.

        Returns None when the component has no cost price.
        """
        if cost_price is None:
            return None
        unit_quantity = self.unit_component_quantity(bom, line)
        required = unit_quantity.mul(quantity, QUANTITY_SCALE)
        return required.mul(cost_price, MONEY_SCALE)

    def component_quantities(self, bom: ExplodableBom) -> dict[UUID, ScaledDecimal]:
        """Effective quantity per component for one batch."""
        totals: dict[UUID, ScaledDecimal] = {}
        for line in bom.active_lines:
            current = totals.get(line.component_id, ScaledDecimal.zero(QUANTITY_SCALE))
            totals[line.component_id] = current.add(self.effective_quantity(line), QUANTITY_SCALE)
        return totals

    @traced_engine("bom_explosion", "1.0", fingerprint_fields=("quantity_to_produce",))
    def explode(
        self,
        bom: ExplodableBom,
        *,
        quantity_to_produce: ScaledInput,
        component_costs: Mapping[UUID, ScaledDecimal | None] | None = None,
    ) -> BomExplosion:
        """
        Component requirements and costs for a production target.

        Raises:
            ValidationFailedError: ``quantity_to_produce`` is not positive.
        """
        qty = ScaledDecimal.of(quantity_to_produce)
        if not qty.is_positive:
            raise ValidationFailedError(
                "BillOfMaterials", bom.id, ["quantity to produce must be positive"]
            )
        costs = component_costs or {}
        requirements = []
        known = ScaledDecimal.zero(MONEY_SCALE)
        unknown: list[UUID] = []
        for line in sorted(bom.active_lines, key=lambda ln: ln.sequence):
            cost_price = costs.get(line.component_id)
            cost = self.cost_for_quantity(bom, line, qty, cost_price)
            if cost is None:
                unknown.append(line.component_id)
            else:
                known = known.add(cost, MONEY_SCALE)
            requirements.append(
                ComponentRequirement(
                    line_id=line.id,
                    component_id=line.component_id,
                    sequence=line.sequence,
                    effective_quantity=self.effective_quantity(line),
                    waste_quantity=self.waste_quantity(line),
                    required_quantity=self.required_quantity_for_production(bom, line, qty),
                    cost_price=cost_price,
                    cost=cost,
                )
            )
        return BomExplosion(
            bom_id=bom.id,
            quantity_to_produce=qty,
            ratio=self.production_ratio(bom, qty),
            requirements=tuple(requirements),
            known_cost=known,
            unknown_cost_component_ids=tuple(unknown),
        )

    @traced_engine("bom_cost", "1.0")
    def total_cost(
        self,
        bom: ExplodableBom,
        component_costs: Mapping[UUID, ScaledDecimal | None],
    ) -> BomCostSummary:
        """Batch cost: sum of ``effective * cost_price`` (scale 4) over active lines."""
        known = ScaledDecimal.zero(MONEY_SCALE)
        unknown: list[UUID] = []
        for line in bom.active_lines:
            cost_price = component_costs.get(line.component_id)
            if cost_price is None:
                unknown.append(line.component_id)
                continue
            known = known.add(self.effective_quantity(line).mul(cost_price, MONEY_SCALE), MONEY_SCALE)
        return BomCostSummary(
            bom_id=bom.id,
            known_cost=known,
            unit_cost=known.div(bom.quantity_produced, MONEY_SCALE),
            unknown_cost_component_ids=tuple(unknown),
        )

    def check_availability(
        self,
        bom: ExplodableBom,
        quantity_to_produce: ScaledInput,
        available: Mapping[UUID, ScaledDecimal],
        labels: Mapping[UUID, str] | None = None,
    ) -> tuple[str, ...]:
        """Shortage messages for components without enough available stock."""
        labels = labels or {}
        shortages = []
        required_by_component: dict[UUID, ScaledDecimal] = {}
        for line in bom.active_lines:
            required = self.required_quantity_for_production(bom, line, quantity_to_produce)
            current = required_by_component.get(line.component_id, ScaledDecimal.zero(QUANTITY_SCALE))
            required_by_component[line.component_id] = current.add(required, QUANTITY_SCALE)
        for component_id, required in required_by_component.items():
            on_hand = available.get(component_id, ScaledDecimal.zero(QUANTITY_SCALE))
            if on_hand < required:
                name = labels.get(component_id, str(component_id))
                shortages.append(
                    f"Insufficient stock for component {name}: "
                    f"required {required}, available {ScaledDecimal.of(on_hand, QUANTITY_SCALE)}"
                )
        if shortages:
            logger.info(
                "bom_component_shortage",
                extra={"bom_id": str(bom.id), "shortage_count": len(shortages)},
            )
        return tuple(shortages)

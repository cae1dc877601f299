"""
inventory_engines.stock_valuation -- Stock value and moving average cost.

Responsibility:
    Values a product's stock across warehouses at its cost price and
    maintains the weighted average cost of a stock location on receipt.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Value per warehouse = on_hand * cost_price at scale 4; totals are
      sums of those figures.
    - A missing cost price yields ``None`` values (unknown), never zero.
    - Average cost = (on_hand * avg + qty * unit_cost) / (on_hand + qty)
      at scale 4; when there is no prior positive stock or no prior
      average, the incoming unit cost becomes the average.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable
from uuid import UUID

from inventory_kernel.domain.values import MONEY_SCALE, QUANTITY_SCALE, ScaledDecimal

# Intermediate products of a scale-6 quantity and a scale-4 price
_PRODUCT_SCALE = QUANTITY_SCALE + MONEY_SCALE


@dataclass(frozen=True)
class WarehouseStockValue:
    """One warehouse's share of a product's stock value."""
    warehouse_id: UUID
    quantity_on_hand: ScaledDecimal
    average_cost: ScaledDecimal | None
    value: ScaledDecimal | None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "warehouse_id": str(self.warehouse_id),
            "quantity_on_hand": str(self.quantity_on_hand),
            "average_cost": str(self.average_cost) if self.average_cost is not None else None,
            "value": str(self.value) if self.value is not None else None,
        }


@dataclass(frozen=True)
class StockValuation:
    """Total stock value of a product, with per-warehouse breakdown."""
    product_id: UUID
    cost_price: ScaledDecimal | None
    total_quantity: ScaledDecimal
    total_value: ScaledDecimal | None
    by_warehouse: tuple[WarehouseStockValue, ...] = ()

    @property
    def is_value_known(self) -> bool:
        return self.total_value is not None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "cost_price": str(self.cost_price) if self.cost_price is not None else None,
            "total_quantity": str(self.total_quantity),
            "total_value": str(self.total_value) if self.total_value is not None else None,
            "by_warehouse": [w.to_snapshot() for w in self.by_warehouse],
        }


def value_stock(
    product_id: UUID,
    cost_price: ScaledDecimal | None,
    holdings: Iterable[tuple[UUID, ScaledDecimal, ScaledDecimal | None]],
) -> StockValuation:
    """
    Value ``holdings`` -- (warehouse_id, on_hand, average_cost) triples.
    """
    breakdown = []
    total_quantity = ScaledDecimal.zero(QUANTITY_SCALE)
    total_value = ScaledDecimal.zero(MONEY_SCALE)
    for warehouse_id, on_hand, average_cost in holdings:
        value = on_hand.mul(cost_price, MONEY_SCALE) if cost_price is not None else None
        breakdown.append(
            WarehouseStockValue(
                warehouse_id=warehouse_id,
                quantity_on_hand=on_hand,
                average_cost=average_cost,
                value=value,
            )
        )
        total_quantity = total_quantity.add(on_hand, QUANTITY_SCALE)
        if value is not None:
            total_value = total_value.add(value, MONEY_SCALE)
    return StockValuation(
        product_id=product_id,
        cost_price=cost_price,
        total_quantity=total_quantity,
        total_value=total_value if cost_price is not None else None,
        by_warehouse=tuple(breakdown),
    )


def weighted_average_cost(
    quantity_on_hand: ScaledDecimal,
    average_cost: ScaledDecimal | None,
    incoming_quantity: ScaledDecimal,
    unit_cost: ScaledDecimal,
) -> ScaledDecimal:
    """New moving average after receiving ``incoming_quantity`` at ``unit_cost``."""
    if average_cost is None or not quantity_on_hand.is_positive:
        return ScaledDecimal.of(unit_cost, MONEY_SCALE)
    total_quantity = quantity_on_hand.add(incoming_quantity, QUANTITY_SCALE)
    total_value = quantity_on_hand.mul(average_cost, _PRODUCT_SCALE).add(
        incoming_quantity.mul(unit_cost, _PRODUCT_SCALE), _PRODUCT_SCALE
    )
    return total_value.div(total_quantity, MONEY_SCALE)

"""
Stock Domain Models.

Warehouses, per (product, warehouse) stock locations, and the movement
history that every on-hand change leaves behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from inventory_engines.stock_valuation import StockValuation, WarehouseStockValue
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, QUANTITY_SCALE, ScaledDecimal
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.stock.models")

ALLOW_NEGATIVE_STOCK = "allow_negative_stock"


class MovementReason(Enum):
    """Why on-hand stock changed."""
    PURCHASE_RECEIPT = "purchase_receipt"
    ADJUSTMENT = "adjustment"
    PHYSICAL_COUNT = "physical_count"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    PRODUCTION_CONSUMPTION = "production_consumption"
    PRODUCTION_OUTPUT = "production_output"
    SALE = "sale"
    CUSTOMER_RETURN = "customer_return"
    SCRAP = "scrap"


@dataclass(frozen=True)
class SourceReference:
    """The document that caused a movement (e.g. a purchase order line)."""
    source_type: str
    source_id: UUID
    line_id: UUID | None = None


def _snapshot_decimal(value: ScaledDecimal | None) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class Warehouse:
    """A stock-holding site and its stock policy settings."""
    id: UUID
    code: str
    name: str
    settings: Mapping[str, Any] = field(default_factory=dict)
    is_active: bool = True
    state: RecordState = field(default_factory=RecordState.active)
    version: int = 0

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("Warehouse code is required")
        object.__setattr__(self, "settings", dict(self.settings))

    def allows_negative_stock(self, default: bool = False) -> bool:
        return bool(self.settings.get(ALLOW_NEGATIVE_STOCK, default))

    @property
    def is_deleted(self) -> bool:
        return self.state.is_deleted

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "settings": dict(self.settings),
            "is_active": self.is_active,
            "deleted_at": (
                self.state.deleted_at.isoformat() if self.state.deleted_at else None
            ),
        }


@dataclass(frozen=True)
class StockLocation:
    """
    Stock of one product in one warehouse.

    ``quantity_on_hand`` may be negative only where the warehouse allows
    it; the ledger enforces that, since the location alone does not know
    the warehouse policy.
    """
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity_on_hand: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(QUANTITY_SCALE))
    quantity_reserved: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(QUANTITY_SCALE))
    quantity_ordered: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(QUANTITY_SCALE))
    average_cost: ScaledDecimal | None = None
    last_movement_at: datetime | None = None
    last_count_at: datetime | None = None
    version: int = 0

    def __post_init__(self):
        for name in ("quantity_on_hand", "quantity_reserved", "quantity_ordered"):
            object.__setattr__(self, name, ScaledDecimal.of(getattr(self, name), QUANTITY_SCALE))
        if self.average_cost is not None:
            object.__setattr__(self, "average_cost", ScaledDecimal.of(self.average_cost, MONEY_SCALE))
        if self.quantity_reserved.is_negative:
            raise ValueError(f"quantity_reserved cannot be negative: {self.quantity_reserved}")
        if self.quantity_ordered.is_negative:
            raise ValueError(f"quantity_ordered cannot be negative: {self.quantity_ordered}")

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.product_id, self.warehouse_id)

    @property
    def available_quantity(self) -> ScaledDecimal:
        """On hand minus reserved."""
        return self.quantity_on_hand.sub(self.quantity_reserved, QUANTITY_SCALE)

    @property
    def future_quantity(self) -> ScaledDecimal:
        """Available plus incoming from open purchase orders."""
        return self.available_quantity.add(self.quantity_ordered, QUANTITY_SCALE)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "warehouse_id": str(self.warehouse_id),
            "quantity_on_hand": str(self.quantity_on_hand),
            "quantity_reserved": str(self.quantity_reserved),
            "quantity_ordered": str(self.quantity_ordered),
            "quantity_available": str(self.available_quantity),
            "average_cost": _snapshot_decimal(self.average_cost),
            "last_movement_at": self.last_movement_at.isoformat() if self.last_movement_at else None,
            "last_count_at": self.last_count_at.isoformat() if self.last_count_at else None,
        }


@dataclass(frozen=True)
class StockMovement:
    """An append-only record of one on-hand change."""
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity: ScaledDecimal
    reason: MovementReason
    occurred_at: datetime
    unit_cost: ScaledDecimal | None = None
    source: SourceReference | None = None
    notes: str | None = None
    actor_id: UUID | None = None

    def __post_init__(self):
        object.__setattr__(self, "quantity", ScaledDecimal.of(self.quantity, QUANTITY_SCALE))
        if self.unit_cost is not None:
            object.__setattr__(self, "unit_cost", ScaledDecimal.of(self.unit_cost, MONEY_SCALE))
        if self.quantity.is_zero:
            raise ValueError("Stock movement quantity cannot be zero")

    @property
    def is_incoming(self) -> bool:
        return self.quantity.is_positive

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "warehouse_id": str(self.warehouse_id),
            "quantity": str(self.quantity),
            "reason": self.reason.value,
            "occurred_at": self.occurred_at.isoformat(),
            "unit_cost": _snapshot_decimal(self.unit_cost),
            "source_type": self.source.source_type if self.source else None,
            "source_id": str(self.source.source_id) if self.source else None,
            "source_line_id": (
                str(self.source.line_id) if self.source and self.source.line_id else None
            ),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class StockDeltaResult:
    """Outcome of one ledger mutation on a location."""
    location: StockLocation
    previous: StockLocation
    movement: StockMovement | None = None


__all__ = [
    "ALLOW_NEGATIVE_STOCK",
    "MovementReason",
    "SourceReference",
    "StockDeltaResult",
    "StockLocation",
    "StockMovement",
    "StockValuation",
    "Warehouse",
    "WarehouseStockValue",
]

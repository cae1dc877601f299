"""
Manufacturing Domain Models.

A bill of materials (BOM) lists the component lines consumed to produce
``quantity_produced`` units of one product.  Lines are owned by their BOM
and are only created, replaced or removed through it.

A production order runs one BOM for a target quantity: it reserves the
components in a source warehouse, consumes them as output is recorded and
posts the finished product to a destination warehouse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import (
    PERCENT_SCALE,
    QUANTITY_SCALE,
    RATE_SCALE,
    ScaledDecimal,
    ScaledInput,
)


@dataclass(frozen=True)
class BomLineInput:
    """Caller-supplied data for a new BOM line."""
    component_id: UUID
    quantity_required: ScaledInput
    waste_factor: ScaledInput = 0
    sequence: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BomLine:
    """
    One component of a BOM.

    Range rules (quantity > 0, waste factor within bounds, sequence > 0)
    are reported by ``BomService.validate`` so that every violation is
    visible at once; construction only normalizes scales.
    """
    id: UUID
    component_id: UUID
    quantity_required: ScaledDecimal
    waste_factor: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(PERCENT_SCALE))
    sequence: int = 1
    notes: str | None = None
    state: RecordState = field(default_factory=RecordState.active)

    def __post_init__(self):
        object.__setattr__(
            self, "quantity_required", ScaledDecimal.of(self.quantity_required, QUANTITY_SCALE)
        )
        object.__setattr__(self, "waste_factor", ScaledDecimal.of(self.waste_factor, PERCENT_SCALE))

    @property
    def is_active(self) -> bool:
        return not self.state.is_deleted

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "component_id": str(self.component_id),
            "quantity_required": str(self.quantity_required),
            "waste_factor": str(self.waste_factor),
            "sequence": self.sequence,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class BillOfMaterials:
    """A production recipe for one product."""
    id: UUID
    code: str
    product_id: UUID
    quantity_produced: ScaledDecimal
    lines: tuple[BomLine, ...] = ()
    revision: int = 1
    is_active: bool = True
    notes: str | None = None
    state: RecordState = field(default_factory=RecordState.active)
    version: int = 0

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("BOM code is required")
        object.__setattr__(
            self, "quantity_produced", ScaledDecimal.of(self.quantity_produced, QUANTITY_SCALE)
        )
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def is_deleted(self) -> bool:
        return self.state.is_deleted

    @property
    def active_lines(self) -> tuple[BomLine, ...]:
        """Lines not removed, in sequence order."""
        return tuple(sorted((ln for ln in self.lines if ln.is_active), key=lambda ln: ln.sequence))

    @property
    def component_ids(self) -> tuple[UUID, ...]:
        return tuple(dict.fromkeys(ln.component_id for ln in self.active_lines))

    def line(self, line_id: UUID) -> BomLine | None:
        for ln in self.lines:
            if ln.id == line_id:
                return ln
        return None

    def next_sequence(self) -> int:
        return max((ln.sequence for ln in self.active_lines), default=0) + 1

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "code": self.code,
            "product_id": str(self.product_id),
            "quantity_produced": str(self.quantity_produced),
            "revision": self.revision,
            "is_active": self.is_active,
            "notes": self.notes,
            "lines": [ln.to_snapshot() for ln in self.active_lines],
            "lines_count": len(self.active_lines),
            "deleted_at": (
                self.state.deleted_at.isoformat() if self.state.deleted_at else None
            ),
        }


class ProductionStatus(Enum):
    """Production order lifecycle states."""
    PLANNED = "planned"
    RESERVED = "reserved"
    IN_PROGRESS = "in_progress"
    PARTIALLY_COMPLETED = "partially_completed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ComponentReservation:
    """Component stock still reserved for an order in its source warehouse."""
    component_id: UUID
    quantity: ScaledDecimal

    def __post_init__(self):
        object.__setattr__(self, "quantity", ScaledDecimal.of(self.quantity, QUANTITY_SCALE))


@dataclass(frozen=True)
class ProductionOrder:
    """
    A run of one BOM.

    ``reservations`` hold what is still earmarked; each recorded output
    draws its components from them first.  ``quantity_produced`` never
    exceeds ``quantity_to_produce``.
    """
    id: UUID
    order_number: str
    bom_id: UUID
    product_id: UUID
    quantity_to_produce: ScaledDecimal
    quantity_produced: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(QUANTITY_SCALE))
    status: ProductionStatus = ProductionStatus.PLANNED
    source_warehouse_id: UUID | None = None
    destination_warehouse_id: UUID | None = None
    reservations: tuple[ComponentReservation, ...] = ()
    planned_start_date: date | None = None
    planned_completion_date: date | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    notes: str | None = None
    state: RecordState = field(default_factory=RecordState.active)
    version: int = 0

    def __post_init__(self):
        object.__setattr__(
            self, "quantity_to_produce", ScaledDecimal.of(self.quantity_to_produce, QUANTITY_SCALE)
        )
        object.__setattr__(
            self, "quantity_produced", ScaledDecimal.of(self.quantity_produced, QUANTITY_SCALE)
        )
        object.__setattr__(self, "reservations", tuple(self.reservations))
        if self.quantity_produced.is_negative:
            raise ValueError(f"quantity_produced cannot be negative: {self.quantity_produced}")
        if self.quantity_produced > self.quantity_to_produce:
            raise ValueError(
                f"quantity_produced {self.quantity_produced} exceeds "
                f"quantity_to_produce {self.quantity_to_produce}"
            )

    @property
    def is_deleted(self) -> bool:
        return self.state.is_deleted

    @property
    def remaining_quantity(self) -> ScaledDecimal:
        return self.quantity_to_produce.sub(self.quantity_produced, QUANTITY_SCALE)

    @property
    def completion_percentage(self) -> ScaledDecimal:
        if self.quantity_to_produce.is_zero:
            return ScaledDecimal.zero(PERCENT_SCALE)
        ratio = self.quantity_produced.div(self.quantity_to_produce, RATE_SCALE)
        return ratio.mul(ScaledDecimal(100, 0), PERCENT_SCALE)

    def reserved_for(self, component_id: UUID) -> ScaledDecimal:
        for reservation in self.reservations:
            if reservation.component_id == component_id:
                return reservation.quantity
        return ScaledDecimal.zero(QUANTITY_SCALE)

    def status_after_output(self) -> ProductionStatus:
        if self.remaining_quantity.is_positive:
            return ProductionStatus.PARTIALLY_COMPLETED
        return ProductionStatus.COMPLETED

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "order_number": self.order_number,
            "bom_id": str(self.bom_id),
            "product_id": str(self.product_id),
            "status": self.status.value,
            "quantity_to_produce": str(self.quantity_to_produce),
            "quantity_produced": str(self.quantity_produced),
            "remaining_quantity": str(self.remaining_quantity),
            "completion_percentage": str(self.completion_percentage),
            "source_warehouse_id": (
                str(self.source_warehouse_id) if self.source_warehouse_id else None
            ),
            "destination_warehouse_id": (
                str(self.destination_warehouse_id) if self.destination_warehouse_id else None
            ),
            "reservations": {
                str(r.component_id): str(r.quantity) for r in self.reservations
            },
            "planned_start_date": _iso(self.planned_start_date),
            "planned_completion_date": _iso(self.planned_completion_date),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "cancellation_reason": self.cancellation_reason,
            "notes": self.notes,
            "deleted_at": _iso(self.state.deleted_at),
        }

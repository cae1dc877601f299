"""
Procurement Domain Models.

Purchase orders and their lines.  Lines belong to exactly one order and
are created or replaced only through it.  Totals are derived from the
lines on demand; nothing is cached on the instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import (
    MONEY_SCALE,
    PERCENT_SCALE,
    QUANTITY_SCALE,
    RATE_SCALE,
    ScaledDecimal,
    ScaledInput,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")

_HUNDRED = ScaledDecimal(100, 0)


class POStatus(Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"
    CLOSED = "closed"


def _received_percentage(received: ScaledDecimal, ordered: ScaledDecimal) -> ScaledDecimal:
    # Ratio at 4, then percent at 2
    if ordered.is_zero:
        return ScaledDecimal.zero(PERCENT_SCALE)
    return received.div(ordered, RATE_SCALE).mul(_HUNDRED, PERCENT_SCALE)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    """Caller-supplied data for a new purchase order line."""
    product_id: UUID
    quantity_ordered: ScaledInput
    unit_price: ScaledInput
    tax_rate: ScaledInput = 0
    warehouse_id: UUID | None = None
    expected_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseOrderLine:
    """
    One product on a purchase order.

    ``quantity_received`` never exceeds ``quantity_ordered``; the workflow
    rejects an over-receipt before a line like that can be built.
    """
    id: UUID
    product_id: UUID
    quantity_ordered: ScaledDecimal
    unit_price: ScaledDecimal
    tax_rate: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(PERCENT_SCALE))
    quantity_received: ScaledDecimal = field(default_factory=lambda: ScaledDecimal.zero(QUANTITY_SCALE))
    warehouse_id: UUID | None = None
    sequence: int = 1
    expected_date: date | None = None
    received_date: date | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "quantity_ordered", ScaledDecimal.of(self.quantity_ordered, QUANTITY_SCALE))
        object.__setattr__(self, "quantity_received", ScaledDecimal.of(self.quantity_received, QUANTITY_SCALE))
        object.__setattr__(self, "unit_price", ScaledDecimal.of(self.unit_price, MONEY_SCALE))
        object.__setattr__(self, "tax_rate", ScaledDecimal.of(self.tax_rate, PERCENT_SCALE))
        if self.quantity_received.is_negative:
            raise ValueError(f"quantity_received cannot be negative: {self.quantity_received}")
        if self.quantity_received.is_positive and self.quantity_received > self.quantity_ordered:
            raise ValueError(
                f"quantity_received {self.quantity_received} exceeds "
                f"quantity_ordered {self.quantity_ordered}"
            )

    @property
    def open_quantity(self) -> ScaledDecimal:
        return self.quantity_ordered.sub(self.quantity_received, QUANTITY_SCALE)

    @property
    def is_fully_received(self) -> bool:
        return self.quantity_received >= self.quantity_ordered

    @property
    def is_partially_received(self) -> bool:
        return self.quantity_received.is_positive and not self.is_fully_received

    @property
    def can_receive_more(self) -> bool:
        return self.open_quantity.is_positive

    @property
    def line_total(self) -> ScaledDecimal:
        return self.quantity_ordered.mul(self.unit_price, MONEY_SCALE)

    @property
    def tax_amount(self) -> ScaledDecimal:
        rate = self.tax_rate.div(_HUNDRED, RATE_SCALE)
        return self.line_total.mul(rate, MONEY_SCALE)

    @property
    def line_total_with_tax(self) -> ScaledDecimal:
        return self.line_total.add(self.tax_amount, MONEY_SCALE)

    @property
    def received_percentage(self) -> ScaledDecimal:
        return _received_percentage(self.quantity_received, self.quantity_ordered)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "warehouse_id": str(self.warehouse_id) if self.warehouse_id else None,
            "sequence": self.sequence,
            "quantity_ordered": str(self.quantity_ordered),
            "quantity_received": str(self.quantity_received),
            "open_quantity": str(self.open_quantity),
            "unit_price": str(self.unit_price),
            "tax_rate": str(self.tax_rate),
            "line_total": str(self.line_total),
            "tax_amount": str(self.tax_amount),
            "line_total_with_tax": str(self.line_total_with_tax),
            "received_percentage": str(self.received_percentage),
            "expected_date": _iso(self.expected_date),
            "received_date": _iso(self.received_date),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order and its lines."""
    id: UUID
    po_number: str
    supplier_id: UUID
    order_date: date
    status: POStatus = POStatus.DRAFT
    expected_delivery_date: date | None = None
    delivery_date: date | None = None
    lines: tuple[PurchaseOrderLine, ...] = ()
    notes: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    ordered_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    state: RecordState = field(default_factory=RecordState.active)
    version: int = 0

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def is_deleted(self) -> bool:
        return self.state.is_deleted

    @property
    def is_receivable(self) -> bool:
        return self.status in (POStatus.ORDERED, POStatus.PARTIALLY_RECEIVED)

    def line(self, line_id: UUID) -> PurchaseOrderLine | None:
        for ln in self.lines:
            if ln.id == line_id:
                return ln
        return None

    def with_line(self, line: PurchaseOrderLine) -> PurchaseOrder:
        """A copy with ``line`` replacing the line of the same id."""
        return replace(self, lines=tuple(line if ln.id == line.id else ln for ln in self.lines))

    def status_after_receipt(self) -> POStatus:
        if all(ln.is_fully_received for ln in self.lines):
            return POStatus.RECEIVED
        return POStatus.PARTIALLY_RECEIVED

    @property
    def total_amount(self) -> ScaledDecimal:
        return ScaledDecimal.sum_of((ln.line_total for ln in self.lines), MONEY_SCALE)

    @property
    def tax_amount(self) -> ScaledDecimal:
        return ScaledDecimal.sum_of((ln.tax_amount for ln in self.lines), MONEY_SCALE)

    @property
    def grand_total(self) -> ScaledDecimal:
        return self.total_amount.add(self.tax_amount, MONEY_SCALE)

    @property
    def total_ordered(self) -> ScaledDecimal:
        return ScaledDecimal.sum_of((ln.quantity_ordered for ln in self.lines), QUANTITY_SCALE)

    @property
    def total_received(self) -> ScaledDecimal:
        return ScaledDecimal.sum_of((ln.quantity_received for ln in self.lines), QUANTITY_SCALE)

    @property
    def open_quantity(self) -> ScaledDecimal:
        return self.total_ordered.sub(self.total_received, QUANTITY_SCALE)

    @property
    def received_percentage(self) -> ScaledDecimal:
        return _received_percentage(self.total_received, self.total_ordered)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "po_number": self.po_number,
            "supplier_id": str(self.supplier_id),
            "status": self.status.value,
            "order_date": _iso(self.order_date),
            "expected_delivery_date": _iso(self.expected_delivery_date),
            "delivery_date": _iso(self.delivery_date),
            "notes": self.notes,
            "approved_by_id": str(self.approved_by_id) if self.approved_by_id else None,
            "approved_at": _iso(self.approved_at),
            "cancellation_reason": self.cancellation_reason,
            "lines": [ln.to_snapshot() for ln in self.lines],
            "total_amount": str(self.total_amount),
            "tax_amount": str(self.tax_amount),
            "grand_total": str(self.grand_total),
            "total_ordered": str(self.total_ordered),
            "total_received": str(self.total_received),
            "open_quantity": str(self.open_quantity),
            "received_percentage": str(self.received_percentage),
            "deleted_at": _iso(self.state.deleted_at),
        }

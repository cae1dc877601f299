"""
SQLAlchemy ORM persistence models for purchase orders.

Order totals are stored alongside the lines for reporting queries; they
are recomputed from the lines on every save.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, ScaledDecimalType, TrackedBase, UUIDString
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, PERCENT_SCALE, QUANTITY_SCALE, ScaledDecimal


class PurchaseOrderModel(TrackedBase):
    """A purchase order header."""

    __tablename__ = "procurement_purchase_orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_status", "status"),
        Index("idx_purchase_order_supplier", "supplier_id"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None]
    ordered_at: Mapped[datetime | None]
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None]
    total_amount: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(MONEY_SCALE), nullable=False)
    tax_amount: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(MONEY_SCALE), nullable=False)
    grand_total: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(MONEY_SCALE), nullable=False)
    total_ordered: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(QUANTITY_SCALE), nullable=False)
    total_received: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(QUANTITY_SCALE), nullable=False)
    deleted_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLineModel.sequence",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.procurement.models import POStatus, PurchaseOrder

        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            supplier_id=self.supplier_id,
            order_date=self.order_date,
            status=POStatus(self.status),
            expected_delivery_date=self.expected_delivery_date,
            delivery_date=self.delivery_date,
            lines=tuple(line.to_dto() for line in self.lines),
            notes=self.notes,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            ordered_at=self.ordered_at,
            cancellation_reason=self.cancellation_reason,
            cancelled_at=self.cancelled_at,
            state=RecordState.from_tombstone(self.deleted_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PurchaseOrderModel":
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto, updated_by_id=None)
        return model

    def apply_dto(self, dto, updated_by_id: UUID | None) -> None:
        self.po_number = dto.po_number
        self.supplier_id = dto.supplier_id
        self.status = dto.status.value
        self.order_date = dto.order_date
        self.expected_delivery_date = dto.expected_delivery_date
        self.delivery_date = dto.delivery_date
        self.notes = dto.notes
        self.approved_by_id = dto.approved_by_id
        self.approved_at = dto.approved_at
        self.ordered_at = dto.ordered_at
        self.cancellation_reason = dto.cancellation_reason
        self.cancelled_at = dto.cancelled_at
        self.total_amount = dto.total_amount
        self.tax_amount = dto.tax_amount
        self.grand_total = dto.grand_total
        self.total_ordered = dto.total_ordered
        self.total_received = dto.total_received
        self.deleted_at = dto.state.deleted_at
        self.version = dto.version + 1
        self.updated_by_id = updated_by_id

        existing = {line.id: line for line in self.lines}
        synced = []
        for line in dto.lines:
            model = existing.get(line.id) or PurchaseOrderLineModel(id=line.id)
            model.apply_dto(line)
            synced.append(model)
        self.lines = synced

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} [{self.status}]>"


class PurchaseOrderLineModel(Base):
    """One product line of a purchase order."""

    __tablename__ = "procurement_purchase_order_lines"

    __table_args__ = (Index("idx_purchase_order_line_product", "product_id"),)

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("procurement_purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_warehouses.id"), nullable=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    quantity_ordered: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    quantity_received: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    unit_price: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(MONEY_SCALE), nullable=False)
    tax_rate: Mapped[ScaledDecimal] = mapped_column(ScaledDecimalType(PERCENT_SCALE), nullable=False)
    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped["PurchaseOrderModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.procurement.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            quantity_received=self.quantity_received,
            warehouse_id=self.warehouse_id,
            sequence=self.sequence,
            expected_date=self.expected_date,
            received_date=self.received_date,
            notes=self.notes,
        )

    def apply_dto(self, dto) -> None:
        self.product_id = dto.product_id
        self.warehouse_id = dto.warehouse_id
        self.sequence = dto.sequence
        self.quantity_ordered = dto.quantity_ordered
        self.quantity_received = dto.quantity_received
        self.unit_price = dto.unit_price
        self.tax_rate = dto.tax_rate
        self.expected_date = dto.expected_date
        self.received_date = dto.received_date
        self.notes = dto.notes

"""
SQLAlchemy ORM persistence models for bills of materials.

``BomModel`` owns its ``BomLineModel`` rows (cascade delete-orphan); lines
are soft-deleted through ``deleted_at`` like the BOM itself.

``ProductionOrderModel`` keeps its open component reservations as a JSON
map of component id to quantity text.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, ScaledDecimalType, TrackedBase, UUIDString
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import PERCENT_SCALE, QUANTITY_SCALE, ScaledDecimal


class BomModel(TrackedBase):
    """A bill of materials header."""

    __tablename__ = "manufacturing_boms"

    __table_args__ = (
        UniqueConstraint("code", name="uq_bom_code"),
        Index("idx_bom_product", "product_id"),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    quantity_produced: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["BomLineModel"]] = relationship(
        back_populates="bom",
        cascade="all, delete-orphan",
        order_by="BomLineModel.sequence",
        lazy="selectin",
    )

    def to_dto(self):
        from inventory_modules.manufacturing.models import BillOfMaterials

        return BillOfMaterials(
            id=self.id,
            code=self.code,
            product_id=self.product_id,
            quantity_produced=self.quantity_produced,
            lines=tuple(line.to_dto() for line in self.lines),
            revision=self.revision,
            is_active=self.is_active,
            notes=self.notes,
            state=RecordState.from_tombstone(self.deleted_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "BomModel":
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto, updated_by_id=None)
        return model

    def apply_dto(self, dto, updated_by_id: UUID | None) -> None:
        self.code = dto.code
        self.product_id = dto.product_id
        self.quantity_produced = dto.quantity_produced
        self.revision = dto.revision
        self.is_active = dto.is_active
        self.notes = dto.notes
        self.deleted_at = dto.state.deleted_at
        self.version = dto.version + 1
        self.updated_by_id = updated_by_id

        existing = {line.id: line for line in self.lines}
        synced = []
        for line in dto.lines:
            model = existing.get(line.id) or BomLineModel(id=line.id)
            model.apply_dto(line)
            synced.append(model)
        self.lines = synced

    def __repr__(self) -> str:
        return f"<BomModel {self.code} r{self.revision}>"


class BomLineModel(Base):
    """One component line of a BOM."""

    __tablename__ = "manufacturing_bom_lines"

    __table_args__ = (Index("idx_bom_line_component", "component_id"),)

    bom_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("manufacturing_boms.id", ondelete="CASCADE"), nullable=False
    )
    component_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    quantity_required: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    waste_factor: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(PERCENT_SCALE), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None]

    bom: Mapped["BomModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from inventory_modules.manufacturing.models import BomLine

        return BomLine(
            id=self.id,
            component_id=self.component_id,
            quantity_required=self.quantity_required,
            waste_factor=self.waste_factor,
            sequence=self.sequence,
            notes=self.notes,
            state=RecordState.from_tombstone(self.deleted_at),
        )

    def apply_dto(self, dto) -> None:
        self.component_id = dto.component_id
        self.quantity_required = dto.quantity_required
        self.waste_factor = dto.waste_factor
        self.sequence = dto.sequence
        self.notes = dto.notes
        self.deleted_at = dto.state.deleted_at


class ProductionOrderModel(TrackedBase):
    """A production order header with its open reservations."""

    __tablename__ = "manufacturing_production_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_production_order_number"),
        Index("idx_production_order_status", "status"),
        Index("idx_production_order_bom", "bom_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bom_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("manufacturing_boms.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity_to_produce: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    quantity_produced: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    source_warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_warehouses.id"), nullable=True
    )
    destination_warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_warehouses.id"), nullable=True
    )
    reservations: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    planned_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    planned_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None]
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def to_dto(self):
        from inventory_modules.manufacturing.models import (
            ComponentReservation,
            ProductionOrder,
            ProductionStatus,
        )

        return ProductionOrder(
            id=self.id,
            order_number=self.order_number,
            bom_id=self.bom_id,
            product_id=self.product_id,
            quantity_to_produce=self.quantity_to_produce,
            quantity_produced=self.quantity_produced,
            status=ProductionStatus(self.status),
            source_warehouse_id=self.source_warehouse_id,
            destination_warehouse_id=self.destination_warehouse_id,
            reservations=tuple(
                ComponentReservation(UUID(component_id), quantity)
                for component_id, quantity in sorted((self.reservations or {}).items())
            ),
            planned_start_date=self.planned_start_date,
            planned_completion_date=self.planned_completion_date,
            started_at=self.started_at,
            completed_at=self.completed_at,
            cancellation_reason=self.cancellation_reason,
            cancelled_at=self.cancelled_at,
            notes=self.notes,
            state=RecordState.from_tombstone(self.deleted_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ProductionOrderModel":
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto, updated_by_id=None)
        return model

    def apply_dto(self, dto, updated_by_id: UUID | None) -> None:
        self.order_number = dto.order_number
        self.bom_id = dto.bom_id
        self.product_id = dto.product_id
        self.status = dto.status.value
        self.quantity_to_produce = dto.quantity_to_produce
        self.quantity_produced = dto.quantity_produced
        self.source_warehouse_id = dto.source_warehouse_id
        self.destination_warehouse_id = dto.destination_warehouse_id
        # Reassigned whole so the JSON change is flushed
        self.reservations = {str(r.component_id): str(r.quantity) for r in dto.reservations}
        self.planned_start_date = dto.planned_start_date
        self.planned_completion_date = dto.planned_completion_date
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at
        self.cancellation_reason = dto.cancellation_reason
        self.cancelled_at = dto.cancelled_at
        self.notes = dto.notes
        self.deleted_at = dto.state.deleted_at
        self.version = dto.version + 1
        self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<ProductionOrderModel {self.order_number} [{self.status}]>"

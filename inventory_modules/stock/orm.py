"""
SQLAlchemy ORM persistence models for the stock area.

Maps to the DTOs in ``inventory_modules.stock.models``:
``WarehouseModel`` -> Warehouse, ``StockLocationModel`` -> StockLocation,
``StockMovementModel`` -> StockMovement.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, ScaledDecimalType, TrackedBase, UUIDString
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, QUANTITY_SCALE, ScaledDecimal


class WarehouseModel(TrackedBase):
    """A stock-holding site."""

    __tablename__ = "stock_warehouses"

    __table_args__ = (UniqueConstraint("code", name="uq_warehouse_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def to_dto(self):
        from inventory_modules.stock.models import Warehouse

        return Warehouse(
            id=self.id,
            code=self.code,
            name=self.name,
            settings=dict(self.settings or {}),
            is_active=self.is_active,
            state=RecordState.from_tombstone(self.deleted_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "WarehouseModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            settings=dict(dto.settings),
            is_active=dto.is_active,
            deleted_at=dto.state.deleted_at,
            version=dto.version + 1,
            created_by_id=created_by_id,
        )

    def apply_dto(self, dto, updated_by_id: UUID) -> None:
        self.code = dto.code
        self.name = dto.name
        # New dict so the JSON column registers the change
        self.settings = dict(dto.settings)
        self.is_active = dto.is_active
        self.deleted_at = dto.state.deleted_at
        self.version = dto.version + 1
        self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<WarehouseModel {self.code}>"


class StockLocationModel(TrackedBase):
    """On-hand, reserved and ordered quantities of one product in one warehouse."""

    __tablename__ = "stock_locations"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_location_product_warehouse"),
        Index("idx_stock_location_product", "product_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("stock_warehouses.id"), nullable=False
    )
    quantity_on_hand: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    quantity_reserved: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    quantity_ordered: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    average_cost: Mapped[ScaledDecimal | None] = mapped_column(
        ScaledDecimalType(MONEY_SCALE), nullable=True
    )
    last_movement_at: Mapped[datetime | None]
    last_count_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def to_dto(self):
        from inventory_modules.stock.models import StockLocation

        return StockLocation(
            id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            quantity_on_hand=self.quantity_on_hand,
            quantity_reserved=self.quantity_reserved,
            quantity_ordered=self.quantity_ordered,
            average_cost=self.average_cost,
            last_movement_at=self.last_movement_at,
            last_count_at=self.last_count_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "StockLocationModel":
        model = cls(id=dto.id, product_id=dto.product_id, warehouse_id=dto.warehouse_id,
                    created_by_id=created_by_id)
        model._copy_quantities(dto)
        return model

    def apply_dto(self, dto, updated_by_id: UUID) -> None:
        self._copy_quantities(dto)
        self.updated_by_id = updated_by_id

    def _copy_quantities(self, dto) -> None:
        self.quantity_on_hand = dto.quantity_on_hand
        self.quantity_reserved = dto.quantity_reserved
        self.quantity_ordered = dto.quantity_ordered
        self.average_cost = dto.average_cost
        self.last_movement_at = dto.last_movement_at
        self.last_count_at = dto.last_count_at
        self.version = dto.version + 1

    def __repr__(self) -> str:
        return f"<StockLocationModel {self.product_id}@{self.warehouse_id} on_hand={self.quantity_on_hand}>"


class StockMovementModel(Base):
    """
    Append-only movement history.

    Rows are never updated, so there is no TrackedBase metadata beyond the
    acting user.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_product_time", "product_id", "occurred_at"),
        Index("idx_stock_movement_source", "source_type", "source_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("catalog_products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("stock_warehouses.id"), nullable=False
    )
    quantity: Mapped[ScaledDecimal] = mapped_column(
        ScaledDecimalType(QUANTITY_SCALE), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    unit_cost: Mapped[ScaledDecimal | None] = mapped_column(
        ScaledDecimalType(MONEY_SCALE), nullable=True
    )
    source_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source_line_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self):
        from inventory_modules.stock.models import MovementReason, SourceReference, StockMovement

        source = None
        if self.source_type is not None and self.source_id is not None:
            source = SourceReference(self.source_type, self.source_id, self.source_line_id)
        return StockMovement(
            id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            quantity=self.quantity,
            reason=MovementReason(self.reason),
            occurred_at=self.occurred_at,
            unit_cost=self.unit_cost,
            source=source,
            notes=self.notes,
            actor_id=self.actor_id,
        )

    @classmethod
    def from_dto(cls, dto) -> "StockMovementModel":
        return cls(
            id=dto.id,
            product_id=dto.product_id,
            warehouse_id=dto.warehouse_id,
            quantity=dto.quantity,
            reason=dto.reason.value,
            occurred_at=dto.occurred_at,
            unit_cost=dto.unit_cost,
            source_type=dto.source.source_type if dto.source else None,
            source_id=dto.source.source_id if dto.source else None,
            source_line_id=dto.source.line_id if dto.source else None,
            notes=dto.notes,
            actor_id=dto.actor_id,
        )

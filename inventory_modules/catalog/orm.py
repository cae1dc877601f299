"""
SQLAlchemy ORM persistence model for catalog products.

Maps to the ``Product`` DTO in ``inventory_modules.catalog.models``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import ScaledDecimalType, TrackedBase
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import MONEY_SCALE, ScaledDecimal


class ProductModel(TrackedBase):
    """A catalog product."""

    __tablename__ = "catalog_products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        Index("idx_product_active", "is_active"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    cost_price: Mapped[ScaledDecimal | None] = mapped_column(
        ScaledDecimalType(MONEY_SCALE), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[datetime | None]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def to_dto(self):
        from inventory_modules.catalog.models import Product

        return Product(
            id=self.id,
            sku=self.sku,
            name=self.name,
            unit=self.unit,
            cost_price=self.cost_price,
            is_active=self.is_active,
            state=RecordState.from_tombstone(self.deleted_at),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ProductModel":
        return cls(
            id=dto.id,
            sku=dto.sku,
            name=dto.name,
            unit=dto.unit,
            cost_price=dto.cost_price,
            is_active=dto.is_active,
            deleted_at=dto.state.deleted_at,
            version=dto.version + 1,
            created_by_id=created_by_id,
        )

    def apply_dto(self, dto, updated_by_id: UUID) -> None:
        self.sku = dto.sku
        self.name = dto.name
        self.unit = dto.unit
        self.cost_price = dto.cost_price
        self.is_active = dto.is_active
        self.deleted_at = dto.state.deleted_at
        self.version = dto.version + 1
        self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<ProductModel {self.sku}>"

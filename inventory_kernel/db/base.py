"""
Module: inventory_kernel.db.base
Responsibility: Declarative base classes and column types for all SQLAlchemy
    ORM models.  Provides the UUID primary key convention, exact fixed-point
    columns for ``ScaledDecimal``, UTC-normalized timestamps and the
    TrackedBase mixin for actor/timestamp metadata.
Architecture position: Kernel > DB.  Lowest-level import target for ORM
    code.  MUST NOT import from services or outer layers.

Invariants enforced:
    - UUID primary keys generated with uuid4.
    - ScaledDecimal columns never round-trip through float: Numeric(p, s) on
      PostgreSQL, canonical text on SQLite (which has no exact decimal type).
    - Timestamps are returned timezone-aware in UTC on every backend.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from inventory_kernel.domain.values import ScaledDecimal


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return value if isinstance(value, PyUUID) else PyUUID(value)
        return None


class ScaledDecimalType(TypeDecorator):
    """
    ScaledDecimal column at a fixed scale.

    Values are rescaled (truncating) to the column scale on bind and come
    back as ScaledDecimal at that scale.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, scale: int, precision: int = 24):
        super().__init__()
        self.scale = scale
        self.precision = precision

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(
            Numeric(self.precision, self.scale, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = ScaledDecimal.of(value, self.scale)
        if dialect.name == "sqlite":
            return str(scaled)
        return scaled.to_decimal()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, (int, str, Decimal)):
            return ScaledDecimal.of(value, self.scale)
        return ScaledDecimal.of(str(value), self.scale)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime, normalized to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            # SQLite stores text; keep it comparable by dropping the offset
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with timestamp and actor tracking.

    Guarantees:
        - created_at is set to server NOW() on INSERT.
        - updated_at auto-updates on every UPDATE.
        - created_by_id is required -- every record has a creator.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

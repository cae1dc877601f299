"""
Module: inventory_kernel.models.activity_log
Responsibility: ORM persistence for the append-only activity log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are only ever inserted; nothing in the system updates or
      deletes them.
    - ``sequence`` numbers the records of one entity 1, 2, 3, ... in
      insertion order; history is read in that order.
    - ``payload_hash`` is the SHA-256 of the canonical JSON of the
      action, entity reference and before/after snapshots.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class ActivityAction(str, Enum):
    """Recorded domain actions."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    APPROVE = "approve"
    MARK_ORDERED = "mark_ordered"
    RECEIVE = "receive"
    CANCEL = "cancel"
    CLOSE = "close"
    STOCK_DELTA = "stock_delta"
    RESERVE = "reserve"
    RELEASE_RESERVATION = "release_reservation"
    ORDERED_ADJUSTMENT = "ordered_adjustment"
    TRANSFER = "transfer"
    PHYSICAL_COUNT = "physical_count"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    CLONE = "clone"
    START = "start"
    RECORD_PRODUCTION = "record_production"
    COMPLETE = "complete"


class ActivityLogModel(Base):
    """One recorded action with before/after snapshots."""

    __tablename__ = "activity_log"

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_occurred_at", "occurred_at"),
        Index("idx_activity_actor", "actor_id"),
        UniqueConstraint(
            "entity_type", "entity_id", "sequence", name="uq_activity_entity_sequence"
        ),
    )

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[UUID | None]
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def to_dto(self):
        from inventory_kernel.services.activity_recorder import ActivityRecord

        return ActivityRecord(
            id=self.id,
            occurred_at=self.occurred_at,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            sequence=self.sequence,
            old_values=self.old_values,
            new_values=self.new_values,
            actor_id=self.actor_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            context=self.context,
            payload_hash=self.payload_hash,
        )

    @classmethod
    def from_dto(cls, dto) -> "ActivityLogModel":
        return cls(
            id=dto.id,
            occurred_at=dto.occurred_at,
            action=dto.action,
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            sequence=dto.sequence,
            actor_id=dto.actor_id,
            ip_address=dto.ip_address,
            user_agent=dto.user_agent,
            old_values=dto.old_values,
            new_values=dto.new_values,
            context=dto.context,
            payload_hash=dto.payload_hash,
        )

    def __repr__(self) -> str:
        return f"<ActivityLogModel {self.action} {self.entity_type}:{self.entity_id}>"

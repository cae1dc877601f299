"""
Record state -- explicit Active / Deleted lifecycle marker.

Aggregates carry a ``RecordState`` instead of a nullable tombstone column
mixed into business logic.  Deleted records stay resolvable by id for
audit and reporting; repositories filter on ``is_deleted`` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RecordStatus(Enum):
    ACTIVE = "active"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class RecordState:
    """Tagged state: ``ACTIVE``, or ``DELETED`` with the tombstone time."""

    status: RecordStatus = RecordStatus.ACTIVE
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        if (self.status is RecordStatus.DELETED) != (self.deleted_at is not None):
            raise ValueError("deleted_at must be set exactly when status is DELETED")

    @classmethod
    def active(cls) -> RecordState:
        return _ACTIVE

    @classmethod
    def deleted(cls, at: datetime) -> RecordState:
        return cls(RecordStatus.DELETED, at)

    @classmethod
    def from_tombstone(cls, deleted_at: datetime | None) -> RecordState:
        """Rebuild from a stored nullable tombstone column."""
        return _ACTIVE if deleted_at is None else cls.deleted(deleted_at)

    @property
    def is_deleted(self) -> bool:
        return self.status is RecordStatus.DELETED

    @property
    def is_active(self) -> bool:
        return self.status is RecordStatus.ACTIVE


_ACTIVE = RecordState()

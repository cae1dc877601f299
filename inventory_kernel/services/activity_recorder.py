"""
ActivityRecorder -- append-only record of domain actions.

Responsibility:
    Receives one call per successful state change (create, update, every
    lifecycle transition, stock delta) with before/after snapshots and the
    acting user, and appends it to the activity log.

Architecture position:
    Kernel > Services.  Services obtain a recorder from their unit of work,
    so the record is written inside the same transaction as the change.

Policy:
    Recording is synchronous and transactional.  If ``record`` raises, the
    exception propagates, the unit of work rolls back, and the triggering
    domain change is not committed.  There is no best-effort mode.

Ordering:
    Each record takes the next ``sequence`` of its entity.  Writers of one
    entity hold its row lock, so the numbers are gap-free; a collision
    that slips past the lock fails the unique constraint and rolls back.

Failure modes:
    - Whatever the backing store raises (IntegrityError, OSError, ...)
      propagates unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.db.memory import InMemoryTransaction
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.activity_log import ActivityAction, ActivityLogModel
from inventory_kernel.utils.hashing import hash_payload

logger = get_logger("services.activity_recorder")

ACTIVITY_TABLE = "activity_log"


@dataclass(frozen=True)
class ActivityRecord:
    """An appended activity log entry."""

    id: UUID
    occurred_at: datetime
    action: str
    entity_type: str
    entity_id: UUID
    sequence: int = 1
    old_values: Mapping[str, Any] | None = None
    new_values: Mapping[str, Any] | None = None
    actor_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    context: Mapping[str, Any] | None = None
    payload_hash: str = ""


@runtime_checkable
class ActivityRecorder(Protocol):
    """Call contract for activity recording."""

    def record(
        self,
        action: ActivityAction | str,
        entity_type: str,
        entity_id: UUID,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        actor: ActorContext | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ActivityRecord:
        ...


def build_activity_record(
    clock: Clock,
    action: ActivityAction | str,
    entity_type: str,
    entity_id: UUID,
    sequence: int,
    old_values: Mapping[str, Any] | None,
    new_values: Mapping[str, Any] | None,
    actor: ActorContext | None,
    context: Mapping[str, Any] | None,
) -> ActivityRecord:
    """Assemble a record and its payload hash."""
    action_value = action.value if isinstance(action, ActivityAction) else str(action)
    old = dict(old_values) if old_values is not None else None
    new = dict(new_values) if new_values is not None else None
    ctx = dict(context) if context else None
    payload_hash = hash_payload(
        {
            "action": action_value,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "old_values": old,
            "new_values": new,
        }
    )
    return ActivityRecord(
        id=uuid4(),
        occurred_at=clock.now(),
        action=action_value,
        entity_type=entity_type,
        entity_id=entity_id,
        sequence=sequence,
        old_values=old,
        new_values=new,
        actor_id=actor.actor_id if actor else None,
        ip_address=actor.ip_address if actor else None,
        user_agent=actor.user_agent if actor else None,
        context=ctx,
        payload_hash=payload_hash,
    )


class SqlActivityRecorder:
    """
    Appends ``ActivityLogModel`` rows through the caller's session.

    Non-goals:
        Does NOT commit -- the unit of work owns the boundary.
    """

    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def record(
        self,
        action: ActivityAction | str,
        entity_type: str,
        entity_id: UUID,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        actor: ActorContext | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ActivityRecord:
        record = build_activity_record(
            self._clock, action, entity_type, entity_id,
            self._next_sequence(entity_type, entity_id),
            old_values, new_values, actor, context,
        )
        self._session.add(ActivityLogModel.from_dto(record))
        self._session.flush()
        logger.debug(
            "activity_recorded",
            extra={
                "activity_action": record.action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return record

    def history(self, entity_type: str, entity_id: UUID) -> list[ActivityRecord]:
        """Records for one entity in insertion order."""
        rows = self._session.execute(
            select(ActivityLogModel)
            .where(
                ActivityLogModel.entity_type == entity_type,
                ActivityLogModel.entity_id == entity_id,
            )
            .order_by(ActivityLogModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]

    def _next_sequence(self, entity_type: str, entity_id: UUID) -> int:
        current = self._session.execute(
            select(func.max(ActivityLogModel.sequence)).where(
                ActivityLogModel.entity_type == entity_type,
                ActivityLogModel.entity_id == entity_id,
            )
        ).scalar_one()
        return (current or 0) + 1


class InMemoryActivityRecorder:
    """Stages records in an in-memory transaction; visible after commit."""

    def __init__(self, transaction: InMemoryTransaction, clock: Clock):
        self._tx = transaction
        self._clock = clock

    def record(
        self,
        action: ActivityAction | str,
        entity_type: str,
        entity_id: UUID,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        actor: ActorContext | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ActivityRecord:
        record = build_activity_record(
            self._clock, action, entity_type, entity_id,
            len(self.history(entity_type, entity_id)) + 1,
            old_values, new_values, actor, context,
        )
        self._tx.put(ACTIVITY_TABLE, record.id, record)
        logger.debug(
            "activity_recorded",
            extra={
                "activity_action": record.action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return record

    def history(self, entity_type: str, entity_id: UUID) -> list[ActivityRecord]:
        records = [
            r for r in self._tx.scan(ACTIVITY_TABLE)
            if r.entity_type == entity_type and r.entity_id == entity_id
        ]
        return sorted(records, key=lambda r: r.sequence)

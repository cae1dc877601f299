"""
Row locking and version-check helpers for SQLAlchemy repositories.

``lock_one`` issues ``SELECT ... FOR UPDATE`` (a no-op on SQLite, whose
write transactions are already serialized) and refreshes identity-map
state so a stale in-session copy is never returned.
"""

from typing import Any, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import OptimisticLockError

T = TypeVar("T")


def lock_one(session: Session, stmt: Select[tuple[T]]) -> T | None:
    """Execute ``stmt`` with a row lock and return the single result or None."""
    return session.execute(
        stmt.with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()


def check_version(entity_type: str, entity_id: Any, stored: int, incoming: int) -> None:
    """Reject a write based on a stale read."""
    if stored != incoming:
        raise OptimisticLockError(entity_type, entity_id)

"""
Module: inventory_kernel.db.memory
Responsibility: Process-local transactional store used by the in-memory
    repositories.  Gives the same unit-of-work semantics as a database
    session: staged writes, atomic commit, rollback, and per-key pessimistic
    locks held until the transaction ends.
Architecture position: Kernel > DB.  Knows nothing about aggregates; tables
    are plain names and records are opaque immutable values.

Invariants enforced:
    - Writes are invisible to other transactions until ``commit``.
    - ``commit`` applies all staged writes under one store-wide lock.
    - A key locked with ``lock()`` stays locked until commit/rollback,
      so read-modify-write under the lock cannot lose updates.
    - A lock table entry lives only while some transaction holds or waits
      for that key.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Hashable, Iterator

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.memory")


class _RowLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        # Transactions holding or waiting for the lock
        self.users = 0


class InMemoryStore:
    """Committed state plus the lock table shared by all transactions."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[Hashable, Any]] = defaultdict(dict)
        self._locks: dict[tuple[str, Hashable], _RowLock] = {}
        self._locks_guard = threading.Lock()
        self._commit_lock = threading.Lock()

    def begin(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)

    @property
    def lock_count(self) -> int:
        """Keys currently held or awaited."""
        with self._locks_guard:
            return len(self._locks)

    def _acquire(self, row: tuple[str, Hashable]) -> None:
        with self._locks_guard:
            entry = self._locks.get(row)
            if entry is None:
                entry = self._locks[row] = _RowLock()
            entry.users += 1
        entry.lock.acquire()

    def _release(self, row: tuple[str, Hashable]) -> None:
        with self._locks_guard:
            entry = self._locks[row]
            entry.lock.release()
            entry.users -= 1
            if entry.users == 0:
                del self._locks[row]

    def _read(self, table: str, key: Hashable) -> Any:
        with self._commit_lock:
            return self._tables[table].get(key)

    def _snapshot(self, table: str) -> dict[Hashable, Any]:
        with self._commit_lock:
            return dict(self._tables[table])

    def _apply(self, staged: dict[str, dict[Hashable, Any]]) -> None:
        with self._commit_lock:
            for table, rows in staged.items():
                self._tables[table].update(rows)


class InMemoryTransaction:
    """
    One unit of work against an ``InMemoryStore``.

    Not thread-safe itself: a transaction belongs to the thread running
    the domain action.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._staged: dict[str, dict[Hashable, Any]] = defaultdict(dict)
        self._held: set[tuple[str, Hashable]] = set()
        self._closed = False

    def lock(self, table: str, key: Hashable) -> None:
        """Acquire the row lock for ``(table, key)`` until the transaction ends."""
        self._ensure_open()
        row = (table, key)
        if row in self._held:
            return
        self._store._acquire(row)
        self._held.add(row)

    def get(self, table: str, key: Hashable) -> Any:
        self._ensure_open()
        staged = self._staged.get(table)
        if staged is not None and key in staged:
            return staged[key]
        return self._store._read(table, key)

    def put(self, table: str, key: Hashable, record: Any) -> None:
        self._ensure_open()
        self._staged[table][key] = record

    def scan(self, table: str) -> Iterator[Any]:
        """All records of ``table`` as seen by this transaction."""
        self._ensure_open()
        rows = self._store._snapshot(table)
        rows.update(self._staged.get(table, {}))
        return iter(list(rows.values()))

    def commit(self) -> None:
        self._ensure_open()
        try:
            self._store._apply(self._staged)
        finally:
            self._close()

    def rollback(self) -> None:
        if self._closed:
            return
        logger.debug(
            "memory_transaction_rolled_back",
            extra={"staged_tables": sorted(self._staged)},
        )
        self._close()

    def _close(self) -> None:
        self._staged.clear()
        for row in self._held:
            self._store._release(row)
        self._held.clear()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction is already closed")

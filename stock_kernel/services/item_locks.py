"""
ItemLockRegistry -- in-process mutual exclusion keyed by item id.

Responsibility:
    Serializes every stock mutation (receive, debit, dispose) that touches
    the same item inside one process.  The read-check-write sequence of a
    debit (sum remaining -> pick batches -> decrement) holds the item's
    lock from the stock check until its transaction commits or rolls back.

Architecture position:
    Kernel > Services -- concurrency infrastructure, no database access.

Invariants enforced:
    - Locks for several items are always acquired in sorted item-id order,
      so two multi-line usage entries cannot deadlock each other.
    - Locks are re-entrant per thread.

Failure modes:
    - None raised here.  A lock is always released by ``hold()``'s
      ``finally`` block, even when the guarded block raises.

Notes:
    Across processes the database row locks taken by the batch ledger
    (``SELECT ... FOR UPDATE`` on PostgreSQL) provide the same guarantee.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from stock_kernel.logging_config import get_logger

logger = get_logger("services.item_locks")


class ItemLockRegistry:
    """Lazily creates one ``RLock`` per item id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, item_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_ids: Iterable[str]) -> Iterator[tuple[str, ...]]:
        """Acquire the locks for ``item_ids`` (deduplicated, sorted)."""
        ordered = tuple(sorted(set(item_ids)))
        acquired: list[threading.RLock] = []
        try:
            for item_id in ordered:
                lock = self.lock_for(item_id)
                lock.acquire()
                acquired.append(lock)
            logger.debug("item_locks_acquired", extra={"item_ids": list(ordered)})
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


_default_registry = ItemLockRegistry()


def default_lock_registry() -> ItemLockRegistry:
    """The process-wide registry shared by every service facade."""
    return _default_registry

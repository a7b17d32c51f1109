"""In-process per-key locking.

Database uniqueness constraints are the cross-process guarantee; this
lock serializes same-process work on one (employee, period) so the
common case never reaches the constraint.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """Re-entrant lock per key, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.RLock, int]] = {}

    @contextmanager
    def hold(self, *key: Hashable) -> Iterator[None]:
        lock = self._checkout(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._checkin(key)

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

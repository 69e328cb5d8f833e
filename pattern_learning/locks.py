"""Shared concurrency primitives for pattern mutations.

The store guards its primary map and indexes with one re-entrant lock.
Feedback runs a read-modify-write per pattern (usage_count, successes,
effectiveness); KeyedLock serializes those sequences per id so two feedback
events on the same pattern never interleave.

Usage:
    locks = KeyedLock()
    with locks.hold(pattern_id):
        # read, mutate, write back
"""

import threading
from contextlib import contextmanager


class KeyedLock:
    """One re-entrant lock per key, created on demand and released when idle."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}
        self._waiters = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

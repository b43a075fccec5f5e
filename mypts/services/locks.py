"""
mypts.services.locks — Per-Account In-Process Locks
=====================================================

Serializes read-check-write units that touch the same account inside
one process.  Cross-process serialization comes from ``SELECT … FOR
UPDATE`` on the account row; this lock additionally covers SQLite (which
ignores ``FOR UPDATE``) and keeps same-process threads from racing the
cooldown and daily-cap checks.

Thread-safe.  Idle keys are dropped once nobody holds or waits on them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class KeyedLock:
    """One mutex per key, created on demand."""

    def __init__(self) -> None:
        self._guard = Lock()
        # key → [lock, holders + waiters]
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str | None) -> Iterator[None]:
        """Hold the lock for *key* for the duration of the block.

        ``None`` means "no account involved" and takes no lock.
        """
        if key is None:
            yield
            return

        with self._guard:
            slot = self._locks.setdefault(key, [Lock(), 0])
            slot[1] += 1
        lock: Lock = slot[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

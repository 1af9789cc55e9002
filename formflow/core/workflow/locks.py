"""Per-instance locking.

Serialises every write for one workflow instance inside this process. The
database transaction additionally takes a row lock on the instance, which
covers callers in other processes on backends that support it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator
from uuid import UUID


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        # Threads holding or waiting on the lock
        self.holders = 0


class InstanceLockRegistry:
    """
    Hands out one re-entrant lock per workflow instance.

    An entry lives only while some thread holds or waits on it, so the
    registry stays as large as the number of instances being worked on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[UUID, _LockEntry] = {}

    @contextmanager
    def hold(self, instance_id: UUID) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(instance_id)
            if entry is None:
                entry = self._locks[instance_id] = _LockEntry()
            entry.holders += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[instance_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

"""Per-destination locks serializing moves into the same path."""

import threading
from contextlib import contextmanager
from pathlib import Path


class DestinationLocks:
    """
    Registry of locks keyed by destination path.

    Locks are created on first use and dropped once nobody holds or waits
    for them, so the registry only grows with concurrent work.
    """

    def __init__(self):
        self._locks: dict[Path, threading.Lock] = {}
        self._users: dict[Path, int] = {}
        self._guard = threading.Lock()
        self.acquisitions = 0
        self.contended = 0

    @contextmanager
    def hold(self, key: Path):
        """Hold the lock for a destination for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1

        try:
            if not lock.acquire(blocking=False):
                with self._guard:
                    self.contended += 1
                lock.acquire()
            with self._guard:
                self.acquisitions += 1
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]

    def is_held(self, key: Path) -> bool:
        """Check if a destination is currently locked."""
        with self._guard:
            lock = self._locks.get(key)
            return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

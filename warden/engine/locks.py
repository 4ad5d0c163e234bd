"""
WARDEN v1.0 - Lock Primitives
=============================

Reader-writer lock shared by the role registry and policy store, and a
keyed variant giving each user baseline its own lock.

Readers proceed concurrently. A waiting writer blocks new readers so
administrative updates are not starved. Read locks are re-entrant per
thread and the writer may take read locks; upgrading a read lock to a
write lock is not supported.

Author: WARDEN Development Team
Version: 1.0.0
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class ReadWriteLock:
    """Writer-preferring reader-writer lock built on a condition variable."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int = 0
        self._write_depth = 0
        self._writers_waiting = 0
        self._local = threading.local()

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        me = threading.get_ident()
        depth = getattr(self._local, "depth", 0)

        # Nested read, or read taken by the current writer
        if depth or self._writer == me:
            self._local.depth = depth + 1
            try:
                yield
            finally:
                self._local.depth = depth
            return

        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

        self._local.depth = 1
        try:
            yield
        finally:
            self._local.depth = 0
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        me = threading.get_ident()

        with self._cond:
            if self._writer == me:
                self._write_depth += 1
            else:
                self._writers_waiting += 1
                try:
                    while self._writer or self._readers:
                        self._cond.wait()
                finally:
                    self._writers_waiting -= 1
                self._writer = me
                self._write_depth = 1

        try:
            yield
        finally:
            with self._cond:
                self._write_depth -= 1
                if self._write_depth == 0:
                    self._writer = 0
                    self._cond.notify_all()


class KeyedReadWriteLocks:
    """One ReadWriteLock per key, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, ReadWriteLock] = {}

    def get(self, key: str) -> ReadWriteLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = ReadWriteLock()
                self._locks[key] = lock
            return lock

    def read_lock(self, key: str):
        return self.get(key).read_lock()

    def write_lock(self, key: str):
        return self.get(key).write_lock()

    def __len__(self) -> int:
        return len(self._locks)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "ReadWriteLock",
    "KeyedReadWriteLocks",
]

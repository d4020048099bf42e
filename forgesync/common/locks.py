"""Synchronisation primitives for in-memory stores.

The locks here guard plain Python data structures and are only ever held for
the duration of a synchronous critical section. They must never be held
across an ``await``.
"""

from __future__ import annotations

import contextlib
import threading
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class ReaderWriterLock:
    """Readers-writer lock with writer preference.

    Any number of readers may hold the lock together; a writer holds it
    alone. A waiting writer blocks new readers so a steady stream of
    ``list_repos`` calls cannot starve a mutation.
    """

    def __init__(self) -> None:
        """Initialise an unlocked lock."""
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        """Block until a shared hold can be taken."""
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        """Release a shared hold."""
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        """Block until an exclusive hold can be taken."""
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        """Release an exclusive hold."""
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextlib.contextmanager
    def read(self) -> cabc.Iterator[None]:
        """Hold the lock shared for the body of a ``with`` block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextlib.contextmanager
    def write(self) -> cabc.Iterator[None]:
        """Hold the lock exclusively for the body of a ``with`` block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class KeyedLocks:
    """Lazily created ``threading.Lock`` per key.

    Used to serialise whole-file rewrites of the same state file while
    letting writes to different files proceed in parallel.
    """

    def __init__(self) -> None:
        """Initialise an empty lock registry."""
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get(self, key: str) -> threading.Lock:
        """Return the lock for ``key``, creating it on first use."""
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

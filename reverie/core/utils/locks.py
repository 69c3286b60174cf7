"""Per-key in-process locks for single-flight sections."""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Hand out one lock per key; entries are dropped once nobody holds or waits."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[Hashable, Lock] = {}
        self._waiters: Dict[Hashable, int] = defaultdict(int)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, Lock())
            self._waiters[key] += 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] <= 0:
                    self._waiters.pop(key, None)
                    self._locks.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["KeyedLocks"]

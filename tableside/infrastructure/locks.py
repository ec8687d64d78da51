# tableside/infrastructure/locks.py

import threading
from contextlib import contextmanager

from tableside.domain.exceptions import RESOURCE_BUSY, ConflictError


class KeyedLocks:
    """
    In-process mutual exclusion keyed by aggregate ("table:<id>",
    "customer:<id>", ...). Keys are always taken in sorted order so two
    callers asking for overlapping key sets cannot deadlock.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._waiters: dict[str, int] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._waiters[key] = self._waiters.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._waiters.get(key, 1) - 1
            if remaining <= 0:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._waiters[key] = remaining

    @contextmanager
    def hold(self, *keys: str, timeout: float | None = None):
        wait = self.timeout_seconds if timeout is None else timeout
        ordered = sorted(set(keys))
        acquired: list[tuple[str, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                if not lock.acquire(timeout=wait):
                    self._checkin(key)
                    raise ConflictError(
                        f"resource busy: {key}",
                        code=RESOURCE_BUSY,
                    )
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def active_keys(self) -> list[str]:
        with self._guard:
            return sorted(self._locks)

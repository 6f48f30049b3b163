"""
Named, timeout-bounded locks shared by every task in the process.

Deploys and the cleanup job take the same lock name before touching a
release, so a deploy never references a release version that is being
deleted. Entries are created on first use and dropped once nobody holds or
waits for them.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, TypeVar

from utils.error_utils import create_lock_timeout_error
from utils.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RELEASE_LOCK_TIMEOUT = 10


def release_lock_name(release_name: str) -> str:
    return f"lock:release:{release_name}"


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        # holders plus waiters; the entry is reclaimed when this drops to zero
        self.users = 0


class NamedResourceLock:
    """Keyed lock registry with per-name mutual exclusion"""

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}

    def _checkout(self, name: str) -> _LockEntry:
        with self._registry_lock:
            entry = self._entries.get(name)
            if entry is None:
                entry = self._entries[name] = _LockEntry()
            entry.users += 1
            return entry

    def _checkin(self, name: str, entry: _LockEntry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(name) is entry:
                del self._entries[name]

    def acquire(self, name: str, timeout: float = DEFAULT_RELEASE_LOCK_TIMEOUT) -> None:
        """Block until ``name`` is free or ``timeout`` seconds pass.

        Raises:
            LockTimeoutError: if the lock was not granted in time
        """
        entry = self._checkout(name)
        logger.debug(f"Acquiring lock {name} (timeout {timeout}s)")
        started = time.monotonic()
        if not entry.lock.acquire(timeout=max(timeout, 0)):
            self._checkin(name, entry)
            logger.warning(f"Timed out after {timeout}s waiting for lock {name}")
            raise create_lock_timeout_error(name, timeout)
        logger.debug(f"Acquired lock {name} after {time.monotonic() - started:.3f}s")

    def release(self, name: str) -> None:
        with self._registry_lock:
            entry = self._entries.get(name)
        if entry is None or not entry.lock.locked():
            raise RuntimeError(f"Lock {name} is not held")
        entry.lock.release()
        self._checkin(name, entry)
        logger.debug(f"Released lock {name}")

    @contextmanager
    def lease(self, name: str, timeout: float = DEFAULT_RELEASE_LOCK_TIMEOUT) -> Iterator[None]:
        self.acquire(name, timeout)
        try:
            yield
        finally:
            self.release(name)

    def with_lock(self, name: str, timeout: float, body: Callable[[], T]) -> T:
        with self.lease(name, timeout):
            return body()

    def is_locked(self, name: str) -> bool:
        with self._registry_lock:
            entry = self._entries.get(name)
        return entry is not None and entry.lock.locked()

    def active_names(self) -> list:
        """Names that currently have a holder or a waiter"""
        with self._registry_lock:
            return sorted(self._entries)


class ReleaseLockProvider:
    """LockProvider that namespaces release names before locking them"""

    def __init__(self, locks: NamedResourceLock):
        self.locks = locks

    def with_lock(self, name: str, timeout: float, body: Callable[[], T]) -> T:
        return self.locks.with_lock(release_lock_name(name), timeout, body)

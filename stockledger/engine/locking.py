"""Per-product mutual exclusion for compound stock operations."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from stockledger.engine.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class ResourceLock:
    """Registry of named locks with owner tracking.

    Select-then-mutate sequences on one product run under that product's lock,
    so two terminals cannot both pick the same batch on a stale quantity.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout
        self._locks: dict[str, threading.Lock] = {}
        self._lock_owners: dict[str, str] = {}
        self._master_lock = threading.Lock()

    def _lock_for(self, resource_key: str) -> threading.Lock:
        with self._master_lock:
            if resource_key not in self._locks:
                self._locks[resource_key] = threading.Lock()
            return self._locks[resource_key]

    def acquire(self, resource_key: str, owner: str, timeout: float | None = None) -> bool:
        """Acquires the lock for a resource, waiting at most `timeout` seconds."""
        lock = self._lock_for(resource_key)
        acquired = lock.acquire(timeout=self.timeout if timeout is None else timeout)
        if acquired:
            self._lock_owners[resource_key] = owner
            logger.debug("Lock acquired: %s -> %s", owner, resource_key)
        else:
            logger.warning("Lock timeout: %s -> %s", owner, resource_key)
        return acquired

    def release(self, resource_key: str, owner: str) -> bool:
        if resource_key not in self._locks:
            return False

        current = self._lock_owners.get(resource_key)
        if current != owner:
            logger.warning("Lock owner mismatch: %s != %s", owner, current)
            return False

        try:
            del self._lock_owners[resource_key]
            self._locks[resource_key].release()
            return True
        except RuntimeError:
            return False

    def is_locked(self, resource_key: str) -> bool:
        if resource_key not in self._locks:
            return False
        return self._locks[resource_key].locked()

    def owner_of(self, resource_key: str) -> str | None:
        return self._lock_owners.get(resource_key)

    @contextmanager
    def hold(self, resource_key: str, owner: str, timeout: float | None = None) -> Iterator[None]:
        """Context manager form of acquire/release; raises LockTimeoutError on contention."""
        if not self.acquire(resource_key, owner, timeout):
            raise LockTimeoutError(f"Could not lock {resource_key} for {owner}")
        try:
            yield
        finally:
            self.release(resource_key, owner)

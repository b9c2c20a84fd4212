"""Per-customer mutual exclusion for lifecycle mutations and ingestion."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from .errors import ConflictError

logger = logging.getLogger(__name__)


class CustomerLockRegistry:
    """Hands out one lock per customer id.

    Archive, restore, ship, delete-archive and the ingestion recompute all
    hold the customer's lock for their whole duration, so none of them can
    interleave on the same customer. Locks of different customers are
    independent; the registry's own lock only guards the lookup table.
    """

    def __init__(self, default_timeout: Optional[float] = 5.0) -> None:
        self.default_timeout = default_timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, customer_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(customer_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[customer_id] = lock
            return lock

    def is_locked(self, customer_id: str) -> bool:
        with self._registry_lock:
            lock = self._locks.get(customer_id)
        return lock is not None and lock.locked()

    @contextmanager
    def hold(
        self,
        customer_id: str,
        timeout: Optional[float] = None,
        *,
        operation: str = "operation",
    ) -> Iterator[None]:
        """Hold the customer's lock; raise :class:`ConflictError` when busy.

        ``timeout`` of ``None`` falls back to the registry default; ``0``
        fails immediately when the lock is taken.
        """

        lock = self._lock_for(customer_id)
        wait = self.default_timeout if timeout is None else timeout
        if wait is None:
            acquired = lock.acquire()
        elif wait <= 0:
            acquired = lock.acquire(blocking=False)
        else:
            acquired = lock.acquire(timeout=wait)
        if not acquired:
            logger.warning("Customer %s is busy; %s rejected", customer_id, operation)
            raise ConflictError(
                f"Customer {customer_id!r} is busy with another operation; retry later"
            )
        try:
            yield
        finally:
            lock.release()

    def forget(self, customer_id: str) -> None:
        """Drop the lock of a deleted customer if nobody holds it."""

        with self._registry_lock:
            lock = self._locks.get(customer_id)
            if lock is not None and not lock.locked():
                del self._locks[customer_id]


__all__ = ["CustomerLockRegistry"]

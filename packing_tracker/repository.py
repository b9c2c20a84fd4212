"""Simple in-memory repositories used by the tracker service layer."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from typing import (
    Callable,
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    TypeVar,
)

from .errors import NotFoundError

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError, NotFoundError):
    """Raised when a requested record is missing."""


class InMemoryRepository(Generic[T]):
    """Ordered collection backed by a dictionary.

    Records are copied on the way in and out, matching the isolation of the
    SQLite repository: callers never mutate stored state by accident. Every
    operation runs under a collection-level lock, so concurrent writers
    touching different records never lose each other's updates.
    """

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}
        self._lock = threading.RLock()

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the collection lock across several operations."""

        with self._lock:
            yield

    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._items[item_id] = copy.deepcopy(item)

    def upsert(self, item_id: str, item: T) -> None:
        with self._lock:
            self._items[item_id] = copy.deepcopy(item)

    def get(self, item_id: str) -> T:
        with self._lock:
            try:
                return copy.deepcopy(self._items[item_id])
            except KeyError as exc:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values() if predicate(item)]

    def find_one(self, predicate: Callable[[T], bool]) -> Optional[T]:
        with self._lock:
            for item in self._items.values():
                if predicate(item):
                    return copy.deepcopy(item)
        return None

    def remove(self, item_id: str) -> None:
        with self._lock:
            if item_id not in self._items:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            del self._items[item_id]

    def list(self) -> List[T]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


__all__ = [
    "InMemoryRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]

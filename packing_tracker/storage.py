"""SQLite-backed persistence helpers for the packing tracker."""

from __future__ import annotations

import pickle
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generic, Iterator, List, Optional, TypeVar, Union

from .domain import (
    ArchiveRecord,
    Customer,
    PackageArchiveEntry,
    Panel,
    PartArchiveEntry,
)
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite.

    Records keep their insertion order (``rowid``); an upsert of an existing
    id keeps its position. All repositories created from one
    :class:`TrackerDatabase` share its connection and its lock.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        table: str,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._connection = connection
        self._table = table
        self._lock = lock or threading.RLock()
        with self._lock:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )
            self._connection.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT COUNT(1) FROM {self._table}"
            )
            value = cursor.fetchone()
        return int(value[0]) if value else 0

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._lock:
            if item_id in self:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
                (item_id, payload),
            )
            self._connection.commit()

    def upsert(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._lock:
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
                (item_id, payload),
            )
            self._connection.commit()

    def get(self, item_id: str) -> T:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]

    def find_one(self, predicate: Callable[[T], bool]) -> Optional[T]:
        for item in self.list():
            if predicate(item):
                return item
        return None

    def remove(self, item_id: str) -> None:
        with self._lock:
            cursor = self._connection.execute(
                f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            self._connection.commit()

    def list(self) -> List[T]:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} ORDER BY rowid"
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]


class TrackerDatabase:
    """Convenience facade bundling SQLite repositories for all collections."""

    def __init__(self, path: Union[str, Path]) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(path), check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self._lock = threading.RLock()
        self.customers = SQLiteRepository[Customer](connection, "customers", self._lock)
        self.panels = SQLiteRepository[Panel](connection, "panels", self._lock)
        self.archives = SQLiteRepository[ArchiveRecord](connection, "archives", self._lock)
        self.package_archives = SQLiteRepository[PackageArchiveEntry](
            connection, "package_archives", self._lock
        )
        self.part_archives = SQLiteRepository[PartArchiveEntry](
            connection, "part_archives", self._lock
        )

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "TrackerDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "TrackerDatabase"]

"""SQLite-backed persistence for production lines and fabrication orders."""

from __future__ import annotations

import pickle
import sqlite3
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from .domain import FabricationOrder, ProductionLine
from .repository import DuplicateRecordError, Identified, RecordNotFoundError

T = TypeVar("T", bound=Identified)


class SQLiteRepository(Generic[T]):
    """Repository that stores pickled records in a single SQLite table.

    Records are listed in insertion order (``rowid``), which keeps the line
    order of a capacity snapshot stable between runs.
    """

    def __init__(self, connection: sqlite3.Connection, table: str) -> None:
        self._connection = connection
        self._table = table
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "id TEXT NOT NULL UNIQUE, payload BLOB NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        cursor = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:  # pragma: no cover - simple delegation
        cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
        value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item: T) -> None:
        try:
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
                (item.id, pickle.dumps(item)),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(
                f"Record with id {item.id!r} already exists"
            ) from exc
        self._connection.commit()

    def upsert(self, item: T) -> None:
        self._connection.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
            (item.id, pickle.dumps(item)),
        )
        self._connection.commit()

    def get(self, item_id: str) -> T:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def list(self) -> List[T]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} ORDER BY rowid"
        )
        return [pickle.loads(row[0]) for row in cursor.fetchall()]

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class SequencingDatabase:
    """Bundles the SQLite repositories the sequencing service reads and writes."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self.lines = SQLiteRepository[ProductionLine](connection, "production_lines")
        self.fabrication_orders = SQLiteRepository[FabricationOrder](
            connection, "fabrication_orders"
        )

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "SequencingDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "SequencingDatabase"]

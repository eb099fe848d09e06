"""In-memory repositories for production lines and fabrication orders."""

from __future__ import annotations

from typing import Callable, Generic, Iterator, List, MutableMapping, Protocol, TypeVar


class Identified(Protocol):
    id: str


T = TypeVar("T", bound=Identified)


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when a record with the same id is already stored."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class InMemoryRepository(Generic[T]):
    """Repository keyed by each record's ``id``, kept in insertion order."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:  # pragma: no cover - convenience
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def add(self, item: T) -> None:
        if item.id in self._items:
            raise DuplicateRecordError(f"Record with id {item.id!r} already exists")
        self._items[item.id] = item

    def upsert(self, item: T) -> None:
        self._items[item.id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def list(self) -> List[T]:
        return list(self._items.values())

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items.values() if predicate(item)]


__all__ = [
    "InMemoryRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]

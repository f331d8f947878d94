"""Ordered in-memory repository used by the order collection."""

from __future__ import annotations

from typing import Dict, Generic, Iterable, Iterator, List, Protocol, TypeVar


class Identified(Protocol):
    id: str


T = TypeVar("T", bound=Identified)


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class StorageError(RepositoryError):
    """Raised when the durable key-value store cannot be read or written."""


class OrderedRepository(Generic[T]):
    """Records keyed by identity that also keep an explicit display order."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: Dict[str, T] = {}
        self._order: List[str] = []
        for item in items:
            self.append(item)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def _check_new(self, item: T) -> None:
        if item.id in self._items:
            raise DuplicateRecordError(f"Record with id {item.id!r} already exists")

    def prepend(self, item: T) -> None:
        self._check_new(item)
        self._items[item.id] = item
        self._order.insert(0, item.id)

    def append(self, item: T) -> None:
        self._check_new(item)
        self._items[item.id] = item
        self._order.append(item.id)

    def replace(self, item: T) -> None:
        """Swap the stored record for ``item`` without moving it."""

        if item.id not in self._items:
            raise RecordNotFoundError(f"Record with id {item.id!r} not found")
        self._items[item.id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> T:
        if item_id not in self._items:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        self._order.remove(item_id)
        return self._items.pop(item_id)

    def remove_at(self, indices: Iterable[int]) -> List[T]:
        """Remove records by position; out-of-range positions are skipped."""

        ids = [
            self._order[index]
            for index in sorted(set(indices), reverse=True)
            if 0 <= index < len(self._order)
        ]
        return [self.remove(item_id) for item_id in ids]

    def list(self) -> List[T]:
        return [self._items[item_id] for item_id in self._order]

    def reset(self, items: Iterable[T]) -> None:
        self._items.clear()
        self._order.clear()
        for item in items:
            self.append(item)


__all__ = [
    "OrderedRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "StorageError",
]

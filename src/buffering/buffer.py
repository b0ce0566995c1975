"""Process-local, single-owner accumulation of delivery units."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Generic, TypeVar

T = TypeVar("T")


class Buffer(Generic[T]):
    """Ordered, append-only collection plus the time it was last emptied.

    Capacity is logical (element count). No deduplication: identical
    elements are kept. Not thread-safe on its own; the owning writer holds
    one lock across ingest, trigger evaluation and flush.
    """

    def __init__(self, *, created_at: float) -> None:
        self._items: list[T] = []
        self.created_at: int = int(created_at)

    def append(self, item: T) -> None:
        self._items.append(item)

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def age_seconds(self, now: float) -> int:
        """Whole seconds since the buffer was created or last emptied."""
        return int(now) - self.created_at

    def snapshot(self) -> list[T]:
        """Point-in-time copy, for inspection only."""
        return list(self._items)

    def drain(self) -> list[T]:
        """Return every element and leave the buffer empty."""
        items, self._items = self._items, []
        return items

    def requeue(self, items: Sequence[T]) -> None:
        """Put undelivered elements back ahead of anything appended since the drain."""
        self._items[:0] = items

    def reset_age(self, now: float) -> None:
        """Restart age accounting (after a delivery or a drop)."""
        self.created_at = int(now)

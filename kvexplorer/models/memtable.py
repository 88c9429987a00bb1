"""
MemTable - In-memory sorted table using a sorted container.
"""

from collections.abc import Iterator

from kvexplorer.interfaces.range_iterable import RangeIterable, until
from kvexplorer.interfaces.sorted_container import SortedContainer
from kvexplorer.models.value import Value


class MemTable(RangeIterable):
    """
    In-memory sorted table backed by a SortedContainer.

    Supports:
    - O(log N) put and get
    - Seeked iteration in both directions
    - Immutability marking for flush to SSTable
    """

    def __init__(self, sorted_container: SortedContainer) -> None:
        self._container = sorted_container
        self._immutable = False

    @property
    def is_immutable(self) -> bool:
        return self._immutable

    def mark_immutable(self) -> None:
        self._immutable = True

    def put(self, key: str, value: Value) -> bool:
        """
        Insert or update a key-value pair (tombstones included).

        Returns:
            True if successful, False if MemTable is immutable.
        """
        if self._immutable:
            return False

        self._container.put(key, value)
        return True

    def get(self, key: str) -> Value | None:
        """Return the newest Value recorded for ``key``, tombstones included."""
        return self._container.get(key)

    def snapshot(
        self, start: str | None = None, reverse: bool = False, end: str | None = None
    ) -> list[tuple[str, Value]]:
        """
        Materialize the entries visible from ``start`` in walk order.

        The copy holds references only, and it lets a scan continue on another
        thread while the event loop keeps writing to this table. ``end`` stops
        the copy early, see ``until``.
        """
        return list(until(self._container.iterator(start, reverse), end, reverse))

    def size(self) -> int:
        return self._container.size()

    def size_bytes(self) -> int:
        return self._container.size_bytes()

    def __iter__(self) -> Iterator[tuple[str, Value]]:
        return iter(self._container)

    def iterator(
        self, start: str | None = None, reverse: bool = False
    ) -> Iterator[tuple[str, Value]]:
        return self._container.iterator(start, reverse)

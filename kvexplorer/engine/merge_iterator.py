"""
K-Way Merge Iterator for merging the engine's sorted sources.
"""

import heapq
import time
from collections.abc import Iterator

from kvexplorer.models.value import Value


class _Descending:
    """Heap key wrapper that inverts string order for reverse merges."""

    __slots__ = ("key",)

    def __init__(self, key: str) -> None:
        self.key = key

    def __lt__(self, other: "_Descending") -> bool:
        return self.key > other.key

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _Descending) and self.key == other.key


class KWayMergeIterator:
    """
    Merges K sorted iterators using a heap.

    Time Complexity: O(M log K) where M = total entries, K = number of sources
    Space Complexity: O(K) for the heap

    Sources are ordered by priority (newest first). When several sources hold
    the same key, the entry from the earliest source wins and the others are
    discarded. All sources must walk in the same direction as ``reverse``.
    """

    def __init__(self, sources: list[Iterator[tuple[str, Value]]], reverse: bool = False) -> None:
        self._reverse = reverse
        self._source_iters: list[Iterator[tuple[str, Value]] | None] = list(sources)
        # (heap key, source_idx, key, value); source_idx breaks ties newest-first
        self._heap: list[tuple[object, int, str, Value]] = []

        for i in range(len(self._source_iters)):
            self._advance_source(i)

    def _advance_source(self, source_idx: int) -> None:
        source_iter = self._source_iters[source_idx]
        if source_iter is None:
            return

        try:
            key, value = next(source_iter)
        except StopIteration:
            self._source_iters[source_idx] = None
            return

        heap_key = _Descending(key) if self._reverse else key
        heapq.heappush(self._heap, (heap_key, source_idx, key, value))

    def __iter__(self) -> "KWayMergeIterator":
        return self

    def __next__(self) -> tuple[str, Value]:
        if not self._heap:
            raise StopIteration

        _, source_idx, key, value = heapq.heappop(self._heap)
        self._advance_source(source_idx)

        # Older duplicates of the same key are shadowed
        while self._heap and self._heap[0][2] == key:
            _, dup_source_idx, _, _ = heapq.heappop(self._heap)
            self._advance_source(dup_source_idx)

        return (key, value)


def live_entries(
    merged: Iterator[tuple[str, Value]], now: float | None = None
) -> Iterator[tuple[str, Value]]:
    """
    Drop tombstones and expired values from a merged walk.

    Args:
        merged: Output of KWayMergeIterator.
        now: Reference time for expiry; fixed once so one scan sees one clock.
    """
    if now is None:
        now = time.time()
    for key, value in merged:
        if value.is_live(now):
            yield (key, value)

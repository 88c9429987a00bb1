"""
RangeIterable protocol for data structures that support seekable iteration.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from itertools import takewhile
from typing import Any


class RangeIterable(ABC):
    """
    Protocol for data structures that can be walked from a seek position.

    Implementations must support:
    - Full ascending iteration via __iter__
    - Seeked iteration in either direction via iterator(start, reverse)
    """

    @abstractmethod
    def __iter__(self) -> Iterator[tuple[str, Any]]:
        """Return an iterator over all key-value pairs in ascending order."""
        pass

    @abstractmethod
    def iterator(
        self, start: str | None = None, reverse: bool = False
    ) -> Iterator[tuple[str, Any]]:
        """
        Return an iterator positioned at ``start``.

        Args:
            start: Seek key. Forward iteration begins at the first key >= start,
                reverse iteration at the last key <= start. None begins at the
                first (forward) or last (reverse) key.
            reverse: Walk keys in descending order.

        Returns:
            Iterator yielding (key, value) tuples.
        """
        pass


def until(
    entries: Iterator[tuple[str, Any]], end: str | None, reverse: bool = False
) -> Iterator[tuple[str, Any]]:
    """
    Cut a seeked walk off at ``end``.

    Forward walks stop before the first key >= ``end``; reverse walks stop
    before the first key < ``end``. None leaves the walk unbounded.
    """
    if end is None:
        return entries
    if reverse:
        return takewhile(lambda entry: entry[0] >= end, entries)
    return takewhile(lambda entry: entry[0] < end, entries)

"""
SortedContainer abstract base class for sorted key-value data structures.
"""

from abc import abstractmethod
from typing import Any

from kvexplorer.interfaces.range_iterable import RangeIterable


class SortedContainer(RangeIterable):
    """
    Abstract base class for sorted key-value containers.

    Provides O(log N) put and get. Removal is expressed by storing a
    tombstone value, so containers never unlink entries.
    Inherits seekable iteration from RangeIterable.
    """

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """
        Insert or update a key-value pair.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """
        Retrieve the value for a given key, None if absent.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def size(self) -> int:
        """Return the number of key-value pairs. O(1)"""
        pass

    @abstractmethod
    def size_bytes(self) -> int:
        """Return the approximate memory footprint in bytes."""
        pass

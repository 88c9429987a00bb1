"""
Abstract base classes for the storage engine.
"""

from kvexplorer.interfaces.range_iterable import RangeIterable
from kvexplorer.interfaces.sorted_container import SortedContainer

__all__ = ["RangeIterable", "SortedContainer"]

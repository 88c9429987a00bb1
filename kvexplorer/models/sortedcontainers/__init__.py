"""
Sorted container implementations for the storage engine.
"""

from kvexplorer.models.sortedcontainers.red_black_tree import RedBlackTree

__all__ = ["RedBlackTree"]

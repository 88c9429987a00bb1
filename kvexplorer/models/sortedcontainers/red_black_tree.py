"""
Red-Black Tree implementation for sorted key-value storage.

Backs the MemTable: writes are inserts or in-place updates (deletes are
tombstone values), so nodes are never unlinked once inserted.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from kvexplorer.interfaces.sorted_container import SortedContainer

# Estimated per-node bookkeeping cost used for memtable size accounting
NODE_OVERHEAD_BYTES = 64


class Color(IntEnum):
    RED = 0
    BLACK = 1


@dataclass
class Node:
    key: str
    value: Any
    color: Color = Color.RED
    left: "Node | None" = None
    right: "Node | None" = None
    parent: "Node | None" = None


class RedBlackTree(SortedContainer):
    """
    Red-Black Tree implementation of SortedContainer.

    Properties maintained:
    1. Every node is either red or black
    2. Root is always black
    3. Red nodes cannot have red children
    4. Every path from root to leaf has same number of black nodes
    """

    def __init__(self) -> None:
        self._root: Node | None = None
        self._size: int = 0
        self._size_bytes: int = 0

    def put(self, key: str, value: Any) -> None:
        """Insert or update a key-value pair. O(log N)"""
        parent = None
        current = self._root

        while current is not None:
            parent = current
            if key < current.key:
                current = current.left
            elif key > current.key:
                current = current.right
            else:
                self._size_bytes += _estimate_size(key, value) - _estimate_size(
                    key, current.value
                )
                current.value = value
                return

        node = Node(key=key, value=value, parent=parent)
        if parent is None:
            self._root = node
        elif key < parent.key:
            parent.left = node
        else:
            parent.right = node

        self._size += 1
        self._size_bytes += _estimate_size(key, value)
        self._fix_insert(node)

    def get(self, key: str) -> Any | None:
        node = self._find_node(key)
        return node.value if node else None

    def size(self) -> int:
        return self._size

    def size_bytes(self) -> int:
        return self._size_bytes

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return self.iterator()

    def iterator(
        self, start: str | None = None, reverse: bool = False
    ) -> Iterator[tuple[str, Any]]:
        return _TreeIterator(self._root, start, reverse)

    def _find_node(self, key: str) -> Node | None:
        current = self._root
        while current is not None:
            if key < current.key:
                current = current.left
            elif key > current.key:
                current = current.right
            else:
                return current
        return None

    def _fix_insert(self, node: Node) -> None:
        """Restore Red-Black properties after inserting ``node``."""
        while node.parent is not None and node.parent.color == Color.RED:
            parent = node.parent
            grandparent = parent.parent
            if grandparent is None:
                break

            if parent is grandparent.left:
                uncle = grandparent.right
                if uncle is not None and uncle.color == Color.RED:
                    parent.color = Color.BLACK
                    uncle.color = Color.BLACK
                    grandparent.color = Color.RED
                    node = grandparent
                    continue
                if node is parent.right:
                    node = parent
                    self._rotate_left(node)
                    parent = node.parent
                parent.color = Color.BLACK
                grandparent.color = Color.RED
                self._rotate_right(grandparent)
            else:
                uncle = grandparent.left
                if uncle is not None and uncle.color == Color.RED:
                    parent.color = Color.BLACK
                    uncle.color = Color.BLACK
                    grandparent.color = Color.RED
                    node = grandparent
                    continue
                if node is parent.left:
                    node = parent
                    self._rotate_right(node)
                    parent = node.parent
                parent.color = Color.BLACK
                grandparent.color = Color.RED
                self._rotate_left(grandparent)

        self._root.color = Color.BLACK

    def _rotate_left(self, node: Node) -> None:
        pivot = node.right
        if pivot is None:
            return

        node.right = pivot.left
        if pivot.left:
            pivot.left.parent = node
        self._replace_child(node, pivot)
        pivot.left = node
        node.parent = pivot

    def _rotate_right(self, node: Node) -> None:
        pivot = node.left
        if pivot is None:
            return

        node.left = pivot.right
        if pivot.right:
            pivot.right.parent = node
        self._replace_child(node, pivot)
        pivot.right = node
        node.parent = pivot

    def _replace_child(self, node: Node, replacement: Node) -> None:
        """Hang ``replacement`` where ``node`` currently sits under its parent."""
        replacement.parent = node.parent
        if node.parent is None:
            self._root = replacement
        elif node is node.parent.left:
            node.parent.left = replacement
        else:
            node.parent.right = replacement


def _estimate_size(key: str, value: Any) -> int:
    size = len(key.encode("utf-8")) + NODE_OVERHEAD_BYTES
    if hasattr(value, "size_bytes"):
        size += value.size_bytes()
    elif isinstance(value, (bytes, bytearray)):
        size += len(value)
    elif isinstance(value, str):
        size += len(value.encode("utf-8"))
    return size


class _TreeIterator(Iterator[tuple[str, Any]]):
    """
    In-order walk from a seek position, ascending or descending.

    The stack holds the path of nodes still to be visited; forward walks push
    left spines, reverse walks push right spines.
    """

    def __init__(self, root: Node | None, start: str | None, reverse: bool) -> None:
        self._stack: list[Node] = []
        self._reverse = reverse
        self._seek(root, start)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return self

    def __next__(self) -> tuple[str, Any]:
        if not self._stack:
            raise StopIteration

        node = self._stack.pop()
        self._push_spine(node.left if self._reverse else node.right)
        return (node.key, node.value)

    def _seek(self, node: Node | None, start: str | None) -> None:
        while node:
            if start is None:
                self._stack.append(node)
                node = node.right if self._reverse else node.left
            elif self._reverse:
                if node.key > start:
                    node = node.left
                else:
                    self._stack.append(node)
                    node = node.right
            else:
                if node.key < start:
                    node = node.right
                else:
                    self._stack.append(node)
                    node = node.left

    def _push_spine(self, node: Node | None) -> None:
        while node:
            self._stack.append(node)
            node = node.right if self._reverse else node.left

"""
Data models for the storage engine and the query layer.
"""

from kvexplorer.models.key_item import KeyItem
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sstable import SSTable
from kvexplorer.models.value import Value, ValueType
from kvexplorer.models.wal import WAL
from kvexplorer.models.wal_entry import WALEntry

__all__ = [
    "KeyItem",
    "Value",
    "ValueType",
    "WALEntry",
    "WAL",
    "MemTable",
    "SSTable",
]

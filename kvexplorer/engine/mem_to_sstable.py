"""
MemToSSTableConverter - Convert MemTable to SSTable on disk.
"""

import os

from kvexplorer.engine.initializer import SSTABLE_DIR
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sstable import SSTable
from kvexplorer.models.wal import WAL


class MemToSSTableConverter:
    """
    Converts an immutable MemTable to an SSTable on disk.

    Tombstones are written through: an older SSTable may still hold the key
    they mask. The associated WAL is deleted once the SSTable is durable.
    """

    def __init__(self, memtable: MemTable, wal: WAL, storage_dir: str) -> None:
        self._memtable = memtable
        self._wal = wal
        self._storage_dir = storage_dir

    def initiate(self, ss_id: str) -> SSTable:
        """
        Write the MemTable out as SSTable ``ss_id``.

        Raises:
            RuntimeError: If the MemTable is still accepting writes.
        """
        if not self._memtable.is_immutable:
            raise RuntimeError("MemTable must be immutable before conversion")

        file_path = os.path.join(self._storage_dir, SSTABLE_DIR, f"{ss_id}.sst")
        sstable = SSTable.create(id=ss_id, file_path=file_path, entries=iter(self._memtable))

        self._wal.destroy()
        return sstable

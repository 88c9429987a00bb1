"""
MemTableRecoverer - Rebuild MemTable from WAL for crash recovery.
"""

import logging

from kvexplorer.interfaces.sorted_container import SortedContainer
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.wal import WAL

logger = logging.getLogger(__name__)


class MemTableRecoverer:
    """
    Recovers a MemTable from a Write-Ahead Log.

    Used during startup to rebuild in-memory state from WAL entries that
    weren't yet flushed to an SSTable.
    """

    def recover(self, wal: WAL, container: SortedContainer) -> MemTable:
        """
        Replay every entry of ``wal`` into a fresh MemTable.

        Raises:
            WALCorruptionError: If any complete entry fails its checksum.
        """
        memtable = MemTable(container)

        replayed = 0
        for entry in wal:
            memtable.put(entry.key, entry.value)
            replayed += 1

        logger.debug(f"Replayed {replayed} entries from WAL {wal.id}")
        return memtable

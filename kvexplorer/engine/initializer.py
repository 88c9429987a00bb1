"""
EngineInitializer - Handle startup and crash recovery.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from kvexplorer.engine.recoverer import MemTableRecoverer
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sortedcontainers import RedBlackTree
from kvexplorer.models.sstable import SSTable
from kvexplorer.models.wal import WAL

logger = logging.getLogger(__name__)

WAL_DIR = "wal"
SSTABLE_DIR = "sstables"

_WAL_NAME = re.compile(r"wal_(\d+)\.wal$")
_SSTABLE_NAME = re.compile(r"(\d+)\.sst$")


@dataclass
class RecoveredState:
    """Everything the engine needs to resume after a restart."""

    # (MemTable, WAL) pairs replayed from unflushed WALs, oldest first
    memtables_and_wals: list[tuple[MemTable, WAL]] = field(default_factory=list)
    # Open SSTables, oldest first
    sstables: list[SSTable] = field(default_factory=list)
    next_ss_id: int = 0
    next_wal_id: int = 0


class EngineInitializer:
    """
    Discovers on-disk state under a storage directory.

    Responsibilities:
    - Remove temp files left by interrupted flushes
    - Replay WAL files into immutable MemTables
    - Open existing SSTables
    - Compute the next WAL and SSTable ids
    """

    def __init__(self, storage_dir: str) -> None:
        self.storage_dir = storage_dir
        self._memtable_recoverer = MemTableRecoverer()
        self._wal_dir = os.path.join(storage_dir, WAL_DIR)
        self._sstable_dir = os.path.join(storage_dir, SSTABLE_DIR)

    def _list_numbered(self, directory: str, pattern: re.Pattern) -> list[tuple[int, str]]:
        """Return (id, path) pairs for files in ``directory`` matching ``pattern``, by id."""
        if not os.path.isdir(directory):
            return []

        found = []
        for filename in os.listdir(directory):
            match = pattern.search(filename)
            if match:
                found.append((int(match.group(1)), os.path.join(directory, filename)))
        return sorted(found)

    def _cleanup_temp_files(self) -> None:
        """
        Remove orphaned ``.tmp`` files from interrupted SSTable writes.

        The data they were meant to hold is still in the WAL and gets
        re-flushed from the recovered MemTable.
        """
        if not os.path.isdir(self._sstable_dir):
            return

        for filename in os.listdir(self._sstable_dir):
            if filename.endswith(".tmp"):
                try:
                    os.remove(os.path.join(self._sstable_dir, filename))
                except OSError as e:
                    logger.warning(f"Could not remove temp file {filename}: {e}")

    def recover(self) -> RecoveredState:
        Path(self._wal_dir).mkdir(parents=True, exist_ok=True)
        Path(self._sstable_dir).mkdir(parents=True, exist_ok=True)
        self._cleanup_temp_files()

        state = RecoveredState()

        for wal_id, wal_path in self._list_numbered(self._wal_dir, _WAL_NAME):
            wal = WAL(id=str(wal_id), file_path=wal_path)
            wal.open(read_only=True)

            memtable = self._memtable_recoverer.recover(wal, RedBlackTree())
            memtable.mark_immutable()
            state.memtables_and_wals.append((memtable, wal))
            state.next_wal_id = wal_id + 1

        for ss_id, sstable_path in self._list_numbered(self._sstable_dir, _SSTABLE_NAME):
            sstable = SSTable(id=str(ss_id), file_path=sstable_path)
            sstable.open()
            state.sstables.append(sstable)
            state.next_ss_id = ss_id + 1

        if state.memtables_and_wals:
            logger.info(
                f"Recovered {len(state.memtables_and_wals)} unflushed WAL(s) "
                f"in {self.storage_dir}"
            )
        return state

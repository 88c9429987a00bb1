"""
WAL - append-only write-ahead log with CRC32-framed entries.
"""

import asyncio
import os
import time
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from kvexplorer.models.exceptions import WALCorruptionError
from kvexplorer.models.wal_entry import (
    FRAME_HEADER_BYTES,
    FRAME_TRAILER_BYTES,
    WALEntry,
    checksum,
)

# Upper bound for the periodic fsync interval
MAX_FSYNC_INTERVAL_MS = 10000


class WAL:
    """
    Write-Ahead Log for durability.

    Every put and delete is framed as [length:4][entry][crc32:4] and appended
    before the MemTable is touched. Replayed on startup to rebuild MemTables
    that never reached an SSTable.
    """

    def __init__(self, id: str, file_path: str) -> None:
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None
        self._read_only: bool = False
        self._seq: int = 0

        # 0 = fsync after every append
        self._fsync_interval_ms: int = 0
        self._last_fsync_time: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def seq(self) -> int:
        return self._seq

    def set_fsync_interval(self, fsync_interval_ms: int) -> None:
        """
        Configure fsync interval.

        Args:
            fsync_interval_ms: Milliseconds between fsyncs, 0 = always fsync.
        """
        if fsync_interval_ms < 0:
            raise ValueError(f"fsync_interval_ms must be >= 0, got {fsync_interval_ms}")
        if fsync_interval_ms > MAX_FSYNC_INTERVAL_MS:
            raise ValueError(
                f"fsync_interval_ms cannot exceed {MAX_FSYNC_INTERVAL_MS}ms, "
                f"got {fsync_interval_ms}"
            )
        self._fsync_interval_ms = fsync_interval_ms

    def open(self, read_only: bool = False) -> None:
        self._read_only = read_only
        Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.file_path, "rb" if read_only else "ab+")

        if not read_only:
            self._seq = self._get_last_seq()

    def mark_read_only(self) -> None:
        if self._file and not self._read_only:
            self._sync()
            self._file.close()
            self._file = open(self.file_path, "rb")
            self._read_only = True

    def is_read_only(self) -> bool:
        return self._read_only

    def _should_sync(self) -> bool:
        if self._fsync_interval_ms == 0:
            return True

        now = time.monotonic()
        if (now - self._last_fsync_time) * 1000 >= self._fsync_interval_ms:
            self._last_fsync_time = now
            return True
        return False

    def _sync(self) -> None:
        """Push buffered bytes through the OS to disk."""
        self._file.flush()
        # fdatasync where available (Linux), fsync elsewhere
        sync_data = getattr(os, "fdatasync", os.fsync)
        sync_data(self._file.fileno())

    def close(self) -> None:
        if self._file:
            if not self._read_only:
                self._sync()
            self._file.close()
            self._file = None

    async def append(self, entry: WALEntry) -> None:
        """
        Append an entry; the fsync (when due) runs in the thread pool.

        Raises:
            RuntimeError: If WAL is read-only or not open.
        """
        if self._read_only:
            raise RuntimeError("Cannot append to read-only WAL")
        if self._file is None:
            raise RuntimeError("WAL is not open")

        frame = entry.to_frame()
        async with self._lock:
            self._file.write(frame)

        if self._should_sync():
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._sync)

        self._seq = entry.seq + 1

    def destroy(self) -> None:
        """Delete the WAL file and close this instance."""
        self.close()
        if os.path.exists(self.file_path):
            os.remove(self.file_path)

    def __iter__(self) -> Iterator[WALEntry]:
        return _WALIterator(self.file_path)

    def _get_last_seq(self) -> int:
        last_seq = 0
        for entry in self:
            last_seq = max(last_seq, entry.seq + 1)
        return last_seq


class _WALIterator(Iterator[WALEntry]):
    """
    Iterator over WAL entries.

    A truncated trailing frame (crash mid-write) ends iteration quietly; a
    complete frame with a bad checksum raises WALCorruptionError.
    """

    def __init__(self, file_path: str) -> None:
        self._file: BinaryIO | None = None
        if os.path.exists(file_path):
            self._file = open(file_path, "rb")

    def __iter__(self) -> Iterator[WALEntry]:
        return self

    def __next__(self) -> WALEntry:
        if self._file is None:
            raise StopIteration

        entry_offset = self._file.tell()
        length_bytes = self._file.read(FRAME_HEADER_BYTES)
        if len(length_bytes) < FRAME_HEADER_BYTES:
            self._stop()

        length = int.from_bytes(length_bytes, "big")
        entry_bytes = self._file.read(length)
        checksum_bytes = self._file.read(FRAME_TRAILER_BYTES)
        if len(entry_bytes) < length or len(checksum_bytes) < FRAME_TRAILER_BYTES:
            self._stop()

        expected = int.from_bytes(checksum_bytes, "big")
        actual = checksum(entry_bytes)
        if expected != actual:
            self.close()
            raise WALCorruptionError(
                expected=expected, actual=actual, entry_offset=entry_offset
            )

        return WALEntry.from_bytes(entry_bytes)

    def _stop(self) -> None:
        self.close()
        raise StopIteration

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def __del__(self) -> None:
        self.close()

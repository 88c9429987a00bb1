"""
SSTable - Sorted String Table for immutable on-disk storage.
"""

import asyncio
import bisect
import os
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from kvexplorer.interfaces.range_iterable import RangeIterable
from kvexplorer.models.exceptions import SSTableCorruptionError
from kvexplorer.models.value import Value


class SSTable(RangeIterable):
    """
    Immutable on-disk sorted key-value storage.

    Layout:
    - Data section: [key_len:4][key][value_len:4][value] per entry, key order
    - Index section: [num_entries:4] then [key_len:4][key][offset:8] per entry
    - Footer: [index_offset:8]

    The whole index is loaded on open; entry reads use os.pread so several
    threads can scan one table at once. Reads after close raise.
    """

    def __init__(self, id: str, file_path: str) -> None:
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None
        self._index: dict[str, int] = {}
        self._sorted_keys: list[str] = []
        # Held across each read so close never releases the fd mid-read
        self._file_lock = threading.Lock()

    def open(self) -> None:
        if not os.path.exists(self.file_path):
            raise FileNotFoundError(f"SSTable not found: {self.file_path}")

        self._file = open(self.file_path, "rb")
        self._load_index()

    def close(self) -> None:
        with self._file_lock:
            if self._file:
                self._file.close()
                self._file = None

    def __len__(self) -> int:
        return len(self._sorted_keys)

    async def get(self, key: str) -> Value | None:
        """Point lookup; file I/O runs in the thread pool."""
        if key not in self._index:
            return None

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_sync, key)

    def _get_sync(self, key: str) -> Value:
        offset = self._index[key]
        entry_key, value = self._read_entry_at(offset)
        if entry_key != key:
            raise SSTableCorruptionError(
                self.file_path, offset, f"index says {key!r}, entry holds {entry_key!r}"
            )
        return value

    def __iter__(self) -> Iterator[tuple[str, Value]]:
        return self.iterator()

    def iterator(
        self, start: str | None = None, reverse: bool = False
    ) -> Iterator[tuple[str, Value]]:
        return _SSTableIterator(self, start, reverse)

    def _load_index(self) -> None:
        self._file.seek(-8, os.SEEK_END)
        index_offset = int.from_bytes(self._file.read(8), "big")
        self._file.seek(index_offset)

        num_entries = int.from_bytes(self._file.read(4), "big")
        keys = []
        for _ in range(num_entries):
            key_len = int.from_bytes(self._file.read(4), "big")
            key = self._file.read(key_len).decode("utf-8")
            self._index[key] = int.from_bytes(self._file.read(8), "big")
            keys.append(key)

        # Written sorted, but sort again so a hand-edited file can't break bisect
        self._sorted_keys = sorted(keys)

    def _read_entry_at(self, offset: int) -> tuple[str, Value]:
        """
        Read one entry with pread, leaving the shared file position alone.

        Raises:
            RuntimeError: The table has been closed.
            SSTableCorruptionError: The file ends inside the entry.
        """
        with self._file_lock:
            if self._file is None:
                raise RuntimeError(f"SSTable {self.id} is closed")
            fd = self._file.fileno()

            key_len = int.from_bytes(self._pread_exact(fd, 4, offset), "big")
            key_bytes = self._pread_exact(fd, key_len, offset + 4)
            value_offset = offset + 4 + key_len
            value_len = int.from_bytes(self._pread_exact(fd, 4, value_offset), "big")
            value_bytes = self._pread_exact(fd, value_len, value_offset + 4)

        return (key_bytes.decode("utf-8"), Value.from_bytes(value_bytes))

    def _pread_exact(self, fd: int, size: int, offset: int) -> bytes:
        data = os.pread(fd, size, offset)
        if len(data) < size:
            raise SSTableCorruptionError(
                self.file_path, offset, f"wanted {size} bytes, read {len(data)}"
            )
        return data

    @staticmethod
    def create(id: str, file_path: str, entries: Iterator[tuple[str, Value]]) -> "SSTable":
        """
        Write a new SSTable from entries already in ascending key order.

        The table is written to ``<file_path>.tmp``, fsynced, then renamed into
        place so a crash never leaves a half-written ``.sst`` behind.
        """
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        temp_path = f"{file_path}.tmp"
        index: list[tuple[bytes, int]] = []

        with open(temp_path, "wb") as f:
            for key, value in entries:
                key_bytes = key.encode("utf-8")
                value_bytes = bytes(value)
                index.append((key_bytes, f.tell()))
                f.write(len(key_bytes).to_bytes(4, "big"))
                f.write(key_bytes)
                f.write(len(value_bytes).to_bytes(4, "big"))
                f.write(value_bytes)

            index_offset = f.tell()
            f.write(len(index).to_bytes(4, "big"))
            for key_bytes, offset in index:
                f.write(len(key_bytes).to_bytes(4, "big"))
                f.write(key_bytes)
                f.write(offset.to_bytes(8, "big"))
            f.write(index_offset.to_bytes(8, "big"))

            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, file_path)

        sstable = SSTable(id, file_path)
        sstable.open()
        return sstable


class _SSTableIterator(Iterator[tuple[str, Value]]):
    """Walks the sorted key list from a bisected seek position."""

    def __init__(self, sstable: SSTable, start: str | None, reverse: bool) -> None:
        self._sstable = sstable
        self._reverse = reverse
        keys = sstable._sorted_keys

        if reverse:
            # Last key <= start
            self._pos = len(keys) - 1 if start is None else bisect.bisect_right(keys, start) - 1
        else:
            self._pos = 0 if start is None else bisect.bisect_left(keys, start)

    def __iter__(self) -> Iterator[tuple[str, Value]]:
        return self

    def __next__(self) -> tuple[str, Value]:
        keys = self._sstable._sorted_keys
        if not 0 <= self._pos < len(keys):
            raise StopIteration

        key = keys[self._pos]
        self._pos += -1 if self._reverse else 1
        return (key, self._sstable._get_sync(key))

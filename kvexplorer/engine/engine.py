"""
Engine - Embedded ordered key-value engine.
"""

import asyncio
import logging
import os
import threading
from collections.abc import Iterator

from kvexplorer.engine.initializer import WAL_DIR, EngineInitializer
from kvexplorer.engine.mem_to_sstable import MemToSSTableConverter
from kvexplorer.engine.merge_iterator import KWayMergeIterator, live_entries
from kvexplorer.interfaces.range_iterable import until
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sortedcontainers import RedBlackTree
from kvexplorer.models.sstable import SSTable
from kvexplorer.models.value import Value
from kvexplorer.models.wal import MAX_FSYNC_INTERVAL_MS, WAL
from kvexplorer.models.wal_entry import WALEntry

logger = logging.getLogger(__name__)


class Engine:
    """
    LSM-Tree based key-value engine storing raw bytes under string keys.

    Provides:
    - put(key, data, ttl_seconds): insert/update, optionally expiring
    - get(key): newest live Value or None
    - delete(key): tombstone a key
    - scan(start, reverse, end): merged walk over every source from a seek key

    Architecture:
    - Writes go to the WAL (durability) then the active MemTable
    - A full MemTable becomes immutable and is flushed to an SSTable by a
      background worker
    - Reads check the active MemTable, then immutable MemTables, then
      SSTables, newest to oldest
    """

    # Default threshold for MemTable rotation (128MB)
    DEFAULT_MEMTABLE_THRESHOLD = 128 * 1024 * 1024

    # Default fsync interval for the WAL
    DEFAULT_FSYNC_INTERVAL_MS = 1000

    MAX_MEMTABLE_THRESHOLD = 1024 * 1024 * 1024

    def __init__(
        self,
        storage_dir: str,
        memtable_threshold: int = DEFAULT_MEMTABLE_THRESHOLD,
        fsync_interval_ms: int = 0,
    ) -> None:
        """
        Recover on-disk state synchronously. Use ``create`` (or ``async with``)
        to also start the background flush worker.

        Args:
            storage_dir: Directory for persistent storage.
            memtable_threshold: Size in bytes at which the MemTable rotates.
            fsync_interval_ms: Milliseconds between WAL fsyncs, 0 = every write.
        """
        if memtable_threshold <= 0:
            raise ValueError(f"memtable_threshold must be positive, got {memtable_threshold}")
        if memtable_threshold > self.MAX_MEMTABLE_THRESHOLD:
            raise ValueError(
                f"memtable_threshold too large: {memtable_threshold} bytes. "
                f"Maximum 1GB to avoid OOM."
            )
        if not 0 <= fsync_interval_ms <= MAX_FSYNC_INTERVAL_MS:
            raise ValueError(
                f"fsync_interval_ms must be within 0..{MAX_FSYNC_INTERVAL_MS}, "
                f"got {fsync_interval_ms}"
            )
        if not storage_dir or not storage_dir.strip():
            raise ValueError("storage_dir cannot be empty")

        storage_dir = os.path.abspath(storage_dir)
        if os.path.exists(storage_dir) and not os.access(storage_dir, os.W_OK):
            raise PermissionError(f"storage_dir not writable: {storage_dir}")

        self._storage_dir = storage_dir
        self._memtable_threshold = memtable_threshold
        self._fsync_interval_ms = fsync_interval_ms

        self._memtable: MemTable
        self._wal: WAL

        # Immutable MemTables pending flush, newest first
        self._immutable_memtables: list[tuple[MemTable, WAL]] = []

        # On-disk SSTables, newest first
        self._sstables: list[SSTable] = []

        self._ss_id_seq: int = 0
        self._wal_id_seq: int = 0

        self._flush_queue: asyncio.Queue[tuple[MemTable, WAL, str]] | None = None
        self._flush_task: asyncio.Task | None = None

        # Serializes puts and deletes
        self._write_lock: asyncio.Lock | None = None

        # Guards the immutable MemTable and SSTable lists
        self._sstables_lock: asyncio.Lock | None = None

        self._async_initialized: bool = False
        self._init_lock = threading.Lock()
        self._closed = False

        self._initialize()

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    @property
    def closed(self) -> bool:
        return self._closed

    async def _ensure_async_initialized(self) -> None:
        """Create asyncio primitives once, inside a running loop."""
        if self._async_initialized:
            return

        with self._init_lock:
            if not self._async_initialized:
                self._flush_queue = asyncio.Queue()
                self._write_lock = asyncio.Lock()
                self._sstables_lock = asyncio.Lock()
                self._async_initialized = True

    @classmethod
    async def create(
        cls,
        storage_dir: str,
        memtable_threshold: int = DEFAULT_MEMTABLE_THRESHOLD,
        fsync_interval_ms: int = DEFAULT_FSYNC_INTERVAL_MS,
    ) -> "Engine":
        """Build an engine, queue recovered MemTables for flush and start the worker."""
        engine = cls(storage_dir, memtable_threshold, fsync_interval_ms)
        await engine._ensure_async_initialized()

        # Oldest first, so SSTable ids follow write order
        for memtable, wal in reversed(engine._immutable_memtables):
            await engine._schedule_flush(memtable, wal)

        await engine._start_flush_worker()
        return engine

    def _initialize(self) -> None:
        state = EngineInitializer(self._storage_dir).recover()

        self._immutable_memtables = list(reversed(state.memtables_and_wals))
        self._sstables = list(reversed(state.sstables))
        self._ss_id_seq = state.next_ss_id
        self._wal_id_seq = state.next_wal_id

        self._create_new_memtable()

    def _create_new_memtable(self) -> None:
        wal_id = str(self._wal_id_seq)
        self._wal_id_seq += 1
        wal_path = os.path.join(self._storage_dir, WAL_DIR, f"wal_{wal_id}.wal")

        self._wal = WAL(id=wal_id, file_path=wal_path)
        self._wal.set_fsync_interval(self._fsync_interval_ms)
        self._wal.open()

        self._memtable = MemTable(RedBlackTree())

    async def put(self, key: str, data: bytes, ttl_seconds: int = 0) -> bool:
        """
        Insert or update ``key``.

        Args:
            key: The key to insert/update.
            data: Raw value bytes.
            ttl_seconds: Lifetime in seconds; <= 0 never expires.
        """
        await self._ensure_async_initialized()
        async with self._write_lock:
            return await self._put_value(key, Value.regular(data, ttl_seconds))

    async def delete(self, key: str) -> bool:
        """Tombstone ``key``. Succeeds whether or not the key exists."""
        await self._ensure_async_initialized()
        async with self._write_lock:
            return await self._put_value(key, Value.tombstone())

    async def _put_value(self, key: str, value: Value) -> bool:
        self._check_open()
        await self._wal.append(WALEntry(key=key, value=value, seq=self._wal.seq))
        self._memtable.put(key, value)
        await self._maybe_rotate_memtable()
        return True

    async def get(self, key: str) -> Value | None:
        """
        Return the newest live Value for ``key``.

        Returns:
            None when the key was never written, is tombstoned, or expired.
        """
        self._check_open()
        await self._ensure_async_initialized()

        value = self._memtable.get(key)
        if value is None:
            async with self._sstables_lock:
                immutable_snapshot = list(self._immutable_memtables)
                sstables_snapshot = list(self._sstables)

            for memtable, _ in immutable_snapshot:
                value = memtable.get(key)
                if value is not None:
                    break
            else:
                for sstable in sstables_snapshot:
                    value = await sstable.get(key)
                    if value is not None:
                        break

        if value is None or not value.is_live():
            return None
        return value

    async def scan(
        self, start: str | None = None, reverse: bool = False, end: str | None = None
    ) -> Iterator[tuple[str, Value]]:
        """
        Snapshot every source and return a lazy merged walk of live entries.

        The active MemTable is copied (references only) from ``start`` onward;
        immutable MemTables and SSTables never change once listed, so they
        are walked lazily. The returned iterator does no event-loop work and
        may be consumed from a worker thread.

        Args:
            start: Seek key, see RangeIterable.iterator.
            reverse: Walk keys in descending order.
            end: Bound for the walk, see range_iterable.until. The active
                MemTable copy stops there too.
        """
        self._check_open()
        await self._ensure_async_initialized()

        async with self._sstables_lock:
            sources: list[Iterator[tuple[str, Value]]] = [
                iter(self._memtable.snapshot(start, reverse, end))
            ]
            sources.extend(
                memtable.iterator(start, reverse) for memtable, _ in self._immutable_memtables
            )
            sources.extend(sstable.iterator(start, reverse) for sstable in self._sstables)

        merged = KWayMergeIterator(sources, reverse=reverse)
        return live_entries(until(merged, end, reverse))

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Engine is closed")

    async def _maybe_rotate_memtable(self) -> None:
        if self._memtable.size_bytes() >= self._memtable_threshold:
            await self._rotate_memtable()

    async def _rotate_memtable(self) -> None:
        """Freeze the active MemTable, queue it for flush and start a new one."""
        self._memtable.mark_immutable()
        self._wal.mark_read_only()

        async with self._sstables_lock:
            self._immutable_memtables.insert(0, (self._memtable, self._wal))

        await self._schedule_flush(self._memtable, self._wal)
        self._create_new_memtable()

    async def _start_flush_worker(self) -> None:
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_worker())

    async def _flush_worker(self) -> None:
        """Background worker that writes queued MemTables to SSTables in the thread pool."""
        loop = asyncio.get_running_loop()
        max_retries = 3

        while True:
            try:
                memtable, wal, ss_id = await self._flush_queue.get()
            except asyncio.CancelledError:
                break

            for attempt in range(max_retries):
                try:
                    sstable = await loop.run_in_executor(
                        None, self._flush_memtable_sync, memtable, wal, ss_id
                    )
                except Exception as e:
                    if attempt == max_retries - 1:
                        logger.critical(
                            f"Flush failed after {max_retries} attempts for SSTable {ss_id}: {e}"
                        )
                        self._flush_queue.task_done()
                        raise RuntimeError(
                            f"Flush worker failed after {max_retries} retries. "
                            f"Data loss imminent. Shutting down."
                        ) from e

                    wait_time = 2**attempt
                    logger.warning(
                        f"Flush failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                    continue

                async with self._sstables_lock:
                    self._sstables.insert(0, sstable)
                    try:
                        self._immutable_memtables.remove((memtable, wal))
                    except ValueError:
                        logger.warning(f"MemTable already flushed: {sstable.id}")

                logger.debug(f"Flushed MemTable to SSTable {sstable.id} ({len(sstable)} keys)")
                break

            self._flush_queue.task_done()

    async def _schedule_flush(self, memtable: MemTable, wal: WAL) -> None:
        # SSTable ids are allocated in the event loop
        ss_id = str(self._ss_id_seq)
        self._ss_id_seq += 1
        await self._flush_queue.put((memtable, wal, ss_id))

    def _flush_memtable_sync(self, memtable: MemTable, wal: WAL, ss_id: str) -> SSTable:
        """Write one MemTable out (thread pool). Touches no shared engine state."""
        converter = MemToSSTableConverter(memtable=memtable, wal=wal, storage_dir=self._storage_dir)
        return converter.initiate(ss_id)

    async def close(self) -> None:
        """Flush everything still in memory, stop the worker and release files."""
        if self._closed:
            return
        await self._ensure_async_initialized()

        async with self._write_lock:
            if self._memtable.size() > 0:
                await self._rotate_memtable()
            self._closed = True

        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_queue.join()

        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass

        # Worker missing or dead: flush the leftovers inline
        if self._immutable_memtables:
            logger.critical(
                f"Forcing flush of {len(self._immutable_memtables)} memtables on shutdown"
            )
            loop = asyncio.get_running_loop()
            failed_flushes = []
            for memtable, wal in reversed(list(self._immutable_memtables)):
                ss_id = str(self._ss_id_seq)
                self._ss_id_seq += 1
                try:
                    sstable = await loop.run_in_executor(
                        None, self._flush_memtable_sync, memtable, wal, ss_id
                    )
                except Exception as e:
                    failed_flushes.append((ss_id, e))
                    continue
                self._sstables.insert(0, sstable)
                self._immutable_memtables.remove((memtable, wal))

            if failed_flushes:
                error_details = "; ".join(f"{ss_id}: {err}" for ss_id, err in failed_flushes)
                raise RuntimeError(
                    f"Failed to flush {len(failed_flushes)} memtables on shutdown. "
                    f"Data may be lost! Errors: {error_details}"
                )

        for sstable in self._sstables:
            sstable.close()

        # The active MemTable was rotated out above, so its WAL holds nothing
        self._wal.destroy()

    async def __aenter__(self) -> "Engine":
        await self._ensure_async_initialized()
        await self._start_flush_worker()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

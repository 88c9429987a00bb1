"""
Store - the ordered store handle shared by every request handler.

A thin adapter over the Engine that adds open/close lifecycle, maps engine
failures onto the explorer's exception taxonomy and exposes the seekable
iterator the query layer walks.
"""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from kvexplorer.engine import Engine
from kvexplorer.models.exceptions import (
    AlreadyOpenError,
    KeyNotFoundError,
    NotOpenError,
    PathNotFoundError,
    StoreFailureError,
)
from kvexplorer.models.value import Value

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = '/\\:*?"<>|'


@dataclass(frozen=True)
class StoreItem:
    """One live entry produced by Store.iterator."""

    key: str
    value: bytes
    expires_at: int

    @property
    def size(self) -> int:
        return len(self.value)


def _store_items(entries: Iterator[tuple[str, Value]]) -> Iterator[StoreItem]:
    try:
        for key, value in entries:
            yield StoreItem(key=key, value=value.data, expires_at=value.expires_at)
    except (OSError, RuntimeError) as e:
        raise StoreFailureError(f"failed to scan store: {e}") from e


class Store:
    """
    Handle around at most one open Engine.

    The handle is created once per process and passed explicitly to the
    components that need it. Opening and closing are serialized by one lock;
    operations take a reference to the current engine under the same lock
    and then run without it. Walks opened through scan() hold off close()
    until they finish.
    """

    def __init__(
        self,
        memtable_threshold: int = Engine.DEFAULT_MEMTABLE_THRESHOLD,
        fsync_interval_ms: int = Engine.DEFAULT_FSYNC_INTERVAL_MS,
    ) -> None:
        self._memtable_threshold = memtable_threshold
        self._fsync_interval_ms = fsync_interval_ms
        self._engine: Engine | None = None
        self._path: str = ""
        self._lock = asyncio.Lock()
        self._active_scans = 0
        self._scans_idle = asyncio.Event()
        self._scans_idle.set()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self, path: str) -> None:
        """
        Open the store at ``path`` for reading and writing.

        Raises:
            AlreadyOpenError: A store is already open on this handle.
            PathNotFoundError: ``path`` does not exist.
            StoreFailureError: The engine could not start.
        """
        async with self._lock:
            if self._engine is not None:
                raise AlreadyOpenError(self._path)
            if not os.path.exists(path):
                raise PathNotFoundError(path)

            try:
                engine = await Engine.create(
                    path,
                    memtable_threshold=self._memtable_threshold,
                    fsync_interval_ms=self._fsync_interval_ms,
                )
            except (OSError, RuntimeError, ValueError) as e:
                raise StoreFailureError(f"failed to open store: {e}") from e

            self._engine = engine
            self._path = path
            logger.info(f"Opened store at {path}")

    async def close(self) -> None:
        """Close the open store; a no-op when nothing is open."""
        async with self._lock:
            if self._engine is None:
                return

            engine, path = self._engine, self._path
            self._engine = None
            self._path = ""
            if not self._scans_idle.is_set():
                logger.info(f"Waiting for {self._active_scans} scans before closing {path}")
                await self._scans_idle.wait()
            try:
                await engine.close()
            except (OSError, RuntimeError) as e:
                raise StoreFailureError(f"failed to close store: {e}") from e
            logger.info(f"Closed store at {path}")

    async def _current(self) -> Engine:
        async with self._lock:
            engine = self._engine
        if engine is None:
            raise NotOpenError()
        return engine

    async def get(self, key: str) -> bytes:
        """
        Return the full value stored under ``key``.

        Raises:
            NotOpenError: No store is open.
            KeyNotFoundError: The key is absent, deleted or expired.
        """
        engine = await self._current()
        try:
            value = await engine.get(key)
        except (OSError, RuntimeError) as e:
            raise StoreFailureError(f"failed to read {key!r}: {e}") from e

        if value is None:
            raise KeyNotFoundError(key)
        return value.data

    async def set(self, key: str, value: bytes, ttl_seconds: int = 0) -> None:
        """Store ``value`` under ``key``; ``ttl_seconds <= 0`` means no expiry."""
        engine = await self._current()
        try:
            await engine.put(key, value, ttl_seconds)
        except (OSError, RuntimeError) as e:
            raise StoreFailureError(f"failed to write {key!r}: {e}") from e

    async def delete(self, key: str) -> None:
        """Delete ``key``; deleting a missing key succeeds."""
        engine = await self._current()
        try:
            await engine.delete(key)
        except (OSError, RuntimeError) as e:
            raise StoreFailureError(f"failed to delete {key!r}: {e}") from e

    async def iterator(
        self, start: str | None = None, reverse: bool = False, end: str | None = None
    ) -> Iterator[StoreItem]:
        """
        Return a walk over live entries from a seek position.

        Forward walks begin at the first key >= ``start``, reverse walks at the
        last key <= ``start``; None begins at the matching end of the keyspace.
        ``end`` bounds the walk: forward walks stop before the first key >=
        ``end``, reverse walks before the first key < ``end``. Values live
        inline with keys in every engine source, so they always come with the key.

        The iterator is a point-in-time snapshot and is safe to consume from a
        worker thread. Consuming it after close() raises StoreFailureError;
        use scan() to keep the store open until the walk is done.
        """
        engine = await self._current()
        return await self._walk(engine, start, reverse, end)

    @asynccontextmanager
    async def scan(
        self, start: str | None = None, reverse: bool = False, end: str | None = None
    ) -> AsyncIterator[Iterator[StoreItem]]:
        """Like iterator(), but close() waits until the block exits."""
        engine = await self._current()
        self._active_scans += 1
        self._scans_idle.clear()
        try:
            yield await self._walk(engine, start, reverse, end)
        finally:
            self._active_scans -= 1
            if self._active_scans == 0:
                self._scans_idle.set()

    @staticmethod
    async def _walk(
        engine: Engine, start: str | None, reverse: bool, end: str | None
    ) -> Iterator[StoreItem]:
        try:
            entries = await engine.scan(start, reverse, end)
        except (OSError, RuntimeError) as e:
            raise StoreFailureError(f"failed to scan store: {e}") from e
        return _store_items(entries)

    async def backup_value(self, key: str, backup_dir: str) -> str | None:
        """
        Copy the current value of ``key`` to ``<backup_dir>/<key>_<timestamp>.bak``.

        Returns:
            The backup file path, or None if the key holds nothing to back up.
        """
        try:
            value = await self.get(key)
        except KeyNotFoundError:
            return None

        safe_key = key
        for char in _UNSAFE_FILENAME_CHARS:
            safe_key = safe_key.replace(char, "_")
        filename = f"{safe_key}_{time.strftime('%Y%m%d-%H%M%S')}.bak"
        path = Path(backup_dir) / filename

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(value)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, write)
        except OSError as e:
            raise StoreFailureError(f"failed to write backup file: {e}") from e

        logger.debug(f"Backed up {key!r} to {path}")
        return str(path)

"""
Tests for the Store handle: lifecycle, point operations, iteration and backups.
"""

import asyncio
import os

import pytest
import pytest_asyncio

from kvexplorer.models.exceptions import (
    AlreadyOpenError,
    KeyNotFoundError,
    NotOpenError,
    PathNotFoundError,
    StoreFailureError,
)
from kvexplorer.store import Store


class TestStoreLifecycle:
    """Tests for open and close."""

    async def test_open_and_close(self, temp_dir):
        store = Store(fsync_interval_ms=0)
        assert not store.is_open

        await store.open(temp_dir)
        assert store.is_open

        await store.close()
        assert not store.is_open

    async def test_open_twice_fails(self, store, temp_dir):
        """A handle holds at most one open store."""
        with pytest.raises(AlreadyOpenError):
            await store.open(temp_dir)
        assert store.is_open

    async def test_open_missing_directory(self, temp_dir):
        store = Store()
        missing = os.path.join(temp_dir, "does-not-exist")

        with pytest.raises(PathNotFoundError) as exc_info:
            await store.open(missing)

        assert "directory does not exist" in str(exc_info.value)
        assert not store.is_open

    async def test_close_is_idempotent(self, temp_dir):
        store = Store()
        await store.close()

        await store.open(temp_dir)
        await store.close()
        await store.close()
        assert not store.is_open

    async def test_reopen_sees_persisted_data(self, temp_dir):
        store = Store(fsync_interval_ms=0)
        await store.open(temp_dir)
        await store.set("key", b"value")
        await store.close()

        await store.open(temp_dir)
        try:
            assert await store.get("key") == b"value"
        finally:
            await store.close()

    async def test_operations_require_open_store(self):
        store = Store()

        with pytest.raises(NotOpenError):
            await store.get("key")
        with pytest.raises(NotOpenError):
            await store.set("key", b"value")
        with pytest.raises(NotOpenError):
            await store.delete("key")
        with pytest.raises(NotOpenError):
            await store.iterator()


class TestStoreOperations:
    """Tests for get, set and delete."""

    async def test_set_and_get(self, store):
        await store.set("key", b"\x00\xffraw")
        assert await store.get("key") == b"\x00\xffraw"

    async def test_get_missing_key(self, store):
        with pytest.raises(KeyNotFoundError) as exc_info:
            await store.get("missing")
        assert str(exc_info.value) == "key not found: missing"

    async def test_delete(self, store):
        await store.set("key", b"value")
        await store.delete("key")

        with pytest.raises(KeyNotFoundError):
            await store.get("key")

    async def test_delete_missing_key_succeeds(self, store):
        await store.delete("never-written")

    async def test_ttl_sets_expiry(self, store):
        await store.set("temp", b"v", ttl_seconds=600)
        await store.set("perm", b"v", ttl_seconds=0)

        items = {item.key: item for item in await store.iterator()}
        assert items["temp"].expires_at > 0
        assert items["perm"].expires_at == 0


class TestStoreIterator:
    """Tests for seekable iteration."""

    @pytest_asyncio.fixture
    async def populated(self, store):
        for key in ["a", "b", "c", "d"]:
            await store.set(key, key.encode() * 3)
        return store

    async def test_forward_from_start(self, populated):
        items = list(await populated.iterator("b"))

        assert [item.key for item in items] == ["b", "c", "d"]
        assert items[0].value == b"bbb"
        assert items[0].size == 3

    async def test_reverse_from_start(self, populated):
        keys = [item.key for item in await populated.iterator("c", reverse=True)]
        assert keys == ["c", "b", "a"]

    async def test_reverse_from_end(self, populated):
        keys = [item.key for item in await populated.iterator(None, reverse=True)]
        assert keys == ["d", "c", "b", "a"]

    async def test_deleted_keys_are_skipped(self, populated):
        await populated.delete("b")
        keys = [item.key for item in await populated.iterator()]
        assert keys == ["a", "c", "d"]

    async def test_end_bounds_the_walk(self, populated):
        assert [item.key for item in await populated.iterator("a", end="c")] == ["a", "b"]
        keys = [item.key for item in await populated.iterator("d", reverse=True, end="b")]
        assert keys == ["d", "c", "b"]


class TestStoreScanAndClose:
    """Walks over on-disk tables racing close()."""

    @pytest_asyncio.fixture
    async def on_disk(self, store, temp_dir):
        for i in range(5):
            await store.set(f"k{i}", b"v")
        # Reopening leaves every key in an SSTable
        await store.close()
        await store.open(temp_dir)
        return store

    async def test_walk_after_close_fails(self, on_disk):
        items = await on_disk.iterator(None)
        await on_disk.close()

        with pytest.raises(StoreFailureError, match="closed"):
            [item.key for item in items]

    async def test_close_waits_for_scan(self, on_disk):
        async with on_disk.scan() as items:
            closing = asyncio.create_task(on_disk.close())
            await asyncio.sleep(0.01)
            assert not closing.done()
            keys = [item.key for item in items]

        await closing
        assert keys == [f"k{i}" for i in range(5)]
        assert not on_disk.is_open

    async def test_scan_after_close_is_not_open(self, on_disk):
        await on_disk.close()

        with pytest.raises(NotOpenError):
            async with on_disk.scan():
                pass


class TestStoreBackup:
    """Tests for copying a value aside before it changes."""

    async def test_backup_writes_value(self, store, temp_dir):
        await store.set("users/42", b"payload")
        backup_dir = os.path.join(temp_dir, "backups")

        path = await store.backup_value("users/42", backup_dir)

        assert path is not None
        name = os.path.basename(path)
        assert name.startswith("users_42_")
        assert name.endswith(".bak")
        with open(path, "rb") as f:
            assert f.read() == b"payload"

    async def test_backup_missing_key(self, store, temp_dir):
        backup_dir = os.path.join(temp_dir, "backups")

        assert await store.backup_value("missing", backup_dir) is None
        assert not os.path.exists(backup_dir)

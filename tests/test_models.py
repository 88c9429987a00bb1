"""
Tests for data models: Value, WALEntry, RedBlackTree, MemTable, WAL and SSTable.
"""

import os
import zlib
from datetime import datetime

import pytest

from kvexplorer.models.exceptions import SSTableCorruptionError, WALCorruptionError
from kvexplorer.models.key_item import KeyItem
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sortedcontainers import RedBlackTree
from kvexplorer.models.sstable import SSTable
from kvexplorer.models.value import Value, ValueType
from kvexplorer.models.wal import WAL
from kvexplorer.models.wal_entry import WALEntry


class TestValue:
    """Tests for Value and ValueType."""

    def test_regular_value(self):
        """Test creating a regular value."""
        value = Value.regular(b"test_data")
        assert value.data == b"test_data"
        assert value.type == ValueType.REGULAR
        assert value.expires_at == 0
        assert not value.is_tombstone()

    def test_tombstone_value(self):
        """Test creating a tombstone."""
        value = Value.tombstone()
        assert value.data is None
        assert value.type == ValueType.TOMBSTONE
        assert value.is_tombstone()
        assert not value.is_live()

    def test_value_serialization(self):
        """Test serialization and deserialization keep data and expiry."""
        original = Value.regular(b"\x00\x01binary", ttl_seconds=60)
        deserialized = Value.from_bytes(bytes(original))

        assert deserialized.data == original.data
        assert deserialized.type == original.type
        assert deserialized.expires_at == original.expires_at
        assert deserialized.ts == original.ts

    def test_tombstone_serialization(self):
        """Test tombstone serialization."""
        deserialized = Value.from_bytes(bytes(Value.tombstone()))

        assert deserialized.is_tombstone()
        assert deserialized.data is None

    def test_empty_value_is_not_tombstone(self):
        """An empty byte string is a real value."""
        deserialized = Value.from_bytes(bytes(Value.regular(b"")))
        assert deserialized.data == b""
        assert deserialized.is_live()

    def test_ttl_sets_absolute_expiry(self):
        """TTL is converted to an absolute unix time at write."""
        ts = datetime.fromtimestamp(1_000_000)
        value = Value.regular(b"x", ttl_seconds=10, ts=ts)

        assert value.expires_at == 1_000_010
        assert not value.is_expired(now=1_000_009)
        assert value.is_expired(now=1_000_010)
        assert not value.is_live(now=1_000_011)

    def test_non_positive_ttl_never_expires(self):
        """Zero or negative TTL means no expiry."""
        assert Value.regular(b"x", ttl_seconds=0).expires_at == 0
        assert Value.regular(b"x", ttl_seconds=-5).expires_at == 0
        assert not Value.regular(b"x").is_expired(now=2**40)

    def test_size_bytes_matches_serialization(self):
        value = Value.regular(b"abc")
        assert value.size_bytes() == len(bytes(value))


class TestWALEntry:
    """Tests for WALEntry."""

    def test_entry_serialization(self):
        """Test serializing and deserializing an entry."""
        entry = WALEntry(key="clé", value=Value.regular(b"data", ttl_seconds=5), seq=42)
        restored = WALEntry.from_bytes(bytes(entry))

        assert restored.key == "clé"
        assert restored.seq == 42
        assert restored.value.data == b"data"
        assert restored.value.expires_at == entry.value.expires_at

    def test_frame_carries_length_and_checksum(self):
        entry = WALEntry(key="k", value=Value.tombstone(), seq=3)
        payload = bytes(entry)
        frame = entry.to_frame()

        assert int.from_bytes(frame[:4], "big") == len(payload)
        assert frame[4:-4] == payload
        assert int.from_bytes(frame[-4:], "big") == zlib.crc32(payload) & 0xFFFFFFFF


class TestRedBlackTree:
    """Tests for the RedBlackTree sorted container."""

    def test_put_and_get(self):
        """Test basic put and get."""
        tree = RedBlackTree()
        tree.put("b", 2)
        tree.put("a", 1)

        assert tree.get("a") == 1
        assert tree.get("b") == 2
        assert tree.get("c") is None

    def test_update_keeps_size(self):
        """Updating a key replaces its value without adding a node."""
        tree = RedBlackTree()
        tree.put("key", b"short")
        tree.put("key", b"a much longer value")

        assert tree.size() == 1
        assert tree.get("key") == b"a much longer value"

    def test_size_bytes_tracks_updates(self):
        """Size accounting follows value growth and shrinkage."""
        tree = RedBlackTree()
        tree.put("key", b"x" * 10)
        small = tree.size_bytes()
        tree.put("key", b"x" * 110)
        assert tree.size_bytes() == small + 100
        tree.put("key", b"x" * 10)
        assert tree.size_bytes() == small

    def test_iteration_is_sorted(self):
        """In-order iteration yields ascending keys whatever the insert order."""
        tree = RedBlackTree()
        keys = [f"key{i:03d}" for i in range(200)]
        for key in reversed(keys):
            tree.put(key, key)

        assert [k for k, _ in tree] == keys

    def test_forward_seek(self):
        """Forward iteration starts at the first key >= start."""
        tree = RedBlackTree()
        for key in ["a", "c", "e", "g"]:
            tree.put(key, key)

        assert [k for k, _ in tree.iterator("c")] == ["c", "e", "g"]
        assert [k for k, _ in tree.iterator("d")] == ["e", "g"]
        assert [k for k, _ in tree.iterator("z")] == []

    def test_reverse_seek(self):
        """Reverse iteration starts at the last key <= start."""
        tree = RedBlackTree()
        for key in ["a", "c", "e", "g"]:
            tree.put(key, key)

        assert [k for k, _ in tree.iterator(reverse=True)] == ["g", "e", "c", "a"]
        assert [k for k, _ in tree.iterator("e", reverse=True)] == ["e", "c", "a"]
        assert [k for k, _ in tree.iterator("d", reverse=True)] == ["c", "a"]
        assert [k for k, _ in tree.iterator("0", reverse=True)] == []

    def test_empty_tree(self):
        tree = RedBlackTree()
        assert list(tree) == []
        assert list(tree.iterator("a", reverse=True)) == []


class TestMemTable:
    """Tests for MemTable."""

    def test_put_and_get(self, memtable):
        """Test basic put and get."""
        assert memtable.put("key1", Value.regular(b"value1"))
        assert memtable.get("key1").data == b"value1"
        assert memtable.get("missing") is None

    def test_immutability(self, memtable):
        """Test that immutable memtable rejects writes."""
        memtable.put("key1", Value.regular(b"value1"))
        memtable.mark_immutable()

        assert memtable.is_immutable
        assert not memtable.put("key2", Value.regular(b"value2"))
        assert memtable.get("key2") is None

    def test_tombstones_are_kept(self, memtable):
        """A delete is recorded as a tombstone entry."""
        memtable.put("key1", Value.regular(b"value1"))
        memtable.put("key1", Value.tombstone())

        assert memtable.size() == 1
        assert memtable.get("key1").is_tombstone()

    def test_snapshot_is_detached(self, memtable, sample_entries):
        """A snapshot does not see writes made after it was taken."""
        for key, value in sample_entries:
            memtable.put(key, value)

        snapshot = memtable.snapshot("key2", reverse=True)
        memtable.put("key0", Value.regular(b"late"))

        assert [k for k, _ in snapshot] == ["key2", "key1"]

    def test_snapshot_stops_at_end(self, memtable):
        """The copy ends at the bound instead of running to the end of the table."""
        for key in ["a", "b", "ba", "bz", "c", "d"]:
            memtable.put(key, Value.regular(b"x"))

        assert [k for k, _ in memtable.snapshot("b", end="c")] == ["b", "ba", "bz"]
        assert [k for k, _ in memtable.snapshot("c", reverse=True, end="b")] == [
            "c",
            "bz",
            "ba",
            "b",
        ]
        assert [k for k, _ in memtable.snapshot("b", end="b")] == []


class TestWAL:
    """Tests for the Write-Ahead Log."""

    async def test_append_and_iterate(self, wal_path):
        """Test appending and reading entries."""
        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        for i in range(3):
            await wal.append(WALEntry(key=f"key{i}", value=Value.regular(b"v"), seq=i))
        wal.close()

        entries = list(WAL(id="1", file_path=wal_path))

        assert [e.key for e in entries] == ["key0", "key1", "key2"]
        assert entries[2].seq == 2

    async def test_reopen_resumes_sequence(self, wal_path):
        """Opening for append continues after the last logged sequence."""
        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        await wal.append(WALEntry(key="a", value=Value.regular(b"1"), seq=0))
        await wal.append(WALEntry(key="b", value=Value.regular(b"2"), seq=1))
        wal.close()

        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        assert wal.seq == 2
        wal.close()

    async def test_read_only_mode(self, wal_path):
        """Test read-only mode."""
        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        wal.mark_read_only()
        assert wal.is_read_only()

        with pytest.raises(RuntimeError):
            await wal.append(WALEntry(key="key", value=Value.regular(b"val"), seq=0))

        wal.close()

    def test_fsync_interval_bounds(self, wal_path):
        wal = WAL(id="1", file_path=wal_path)
        with pytest.raises(ValueError):
            wal.set_fsync_interval(-1)
        with pytest.raises(ValueError):
            wal.set_fsync_interval(10_001)

    async def test_corrupted_entry_detected(self, wal_path):
        """Flipping a byte inside an entry fails its checksum."""
        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        await wal.append(WALEntry(key="key1", value=Value.regular(b"value1"), seq=0))
        wal.close()

        with open(wal_path, "r+b") as f:
            f.seek(10)
            original = f.read(1)
            f.seek(10)
            f.write(bytes([original[0] ^ 0xFF]))

        with pytest.raises(WALCorruptionError) as exc_info:
            list(WAL(id="1", file_path=wal_path))

        assert exc_info.value.entry_offset == 0

    async def test_truncated_tail_ends_iteration(self, wal_path):
        """A torn final frame is dropped; earlier entries survive."""
        wal = WAL(id="1", file_path=wal_path)
        wal.open()
        await wal.append(WALEntry(key="key1", value=Value.regular(b"value1"), seq=0))
        await wal.append(WALEntry(key="key2", value=Value.regular(b"value2"), seq=1))
        wal.close()

        with open(wal_path, "r+b") as f:
            f.truncate(os.path.getsize(wal_path) - 2)

        entries = list(WAL(id="1", file_path=wal_path))
        assert [e.key for e in entries] == ["key1"]

    def test_missing_file_iterates_empty(self, wal_path):
        assert list(WAL(id="1", file_path=wal_path)) == []


class TestSSTable:
    """Tests for SSTable."""

    async def test_create_and_read(self, sstable_path, sample_entries):
        """Test creating and reading an SSTable."""
        sstable = SSTable.create(id="1", file_path=sstable_path, entries=iter(sample_entries))

        assert len(sstable) == 3
        assert (await sstable.get("key1")).data == b"value1"
        assert (await sstable.get("key3")).data == b"value3"
        assert await sstable.get("key4") is None

        sstable.close()

    async def test_no_temp_file_after_create(self, sstable_path, sample_entries):
        """The table is renamed into place once written."""
        sstable = SSTable.create(id="1", file_path=sstable_path, entries=iter(sample_entries))

        assert os.path.exists(sstable_path)
        assert not os.path.exists(sstable_path + ".tmp")
        sstable.close()

    def test_seeked_iteration(self, sstable_path):
        """Forward and reverse walks honour the seek key."""
        entries = [(f"key{i}", Value.regular(f"val{i}".encode())) for i in range(10)]
        sstable = SSTable.create(id="1", file_path=sstable_path, entries=iter(entries))

        forward = [k for k, _ in sstable.iterator("key7")]
        assert forward == ["key7", "key8", "key9"]

        backward = [k for k, _ in sstable.iterator("key2x", reverse=True)]
        assert backward == ["key2", "key1", "key0"]

        assert [k for k, _ in sstable.iterator(reverse=True)][0] == "key9"
        sstable.close()

    def test_reopen_reads_index(self, sstable_path, sample_entries):
        """A reopened table serves the same entries."""
        SSTable.create(id="1", file_path=sstable_path, entries=iter(sample_entries)).close()

        sstable = SSTable(id="1", file_path=sstable_path)
        sstable.open()
        assert [(k, v.data) for k, v in sstable] == [(k, v.data) for k, v in sample_entries]
        sstable.close()

    def test_open_missing_file(self, sstable_path):
        with pytest.raises(FileNotFoundError):
            SSTable(id="1", file_path=sstable_path).open()

    async def test_read_after_close_raises(self, sstable_path, sample_entries):
        """A walk or lookup on a closed table fails instead of coming back short."""
        sstable = SSTable.create(id="1", file_path=sstable_path, entries=iter(sample_entries))
        walk = sstable.iterator()
        assert next(walk)[0] == "key1"

        sstable.close()

        with pytest.raises(RuntimeError, match="closed"):
            next(walk)
        with pytest.raises(RuntimeError, match="closed"):
            await sstable.get("key2")

    def test_truncated_entry_raises(self, sstable_path, sample_entries):
        """A file cut short under an open table is reported as corruption."""
        sstable = SSTable.create(id="1", file_path=sstable_path, entries=iter(sample_entries))
        os.truncate(sstable_path, 6)

        with pytest.raises(SSTableCorruptionError) as exc_info:
            list(sstable)

        assert exc_info.value.offset == 4
        sstable.close()


class TestKeyItem:
    def test_wire_form(self):
        item = KeyItem(key="k", value_preview="hello", size=5, expires_at=0)
        assert item.to_dict() == {
            "key": "k",
            "value_preview": "hello",
            "size": 5,
            "expires_at": 0,
        }

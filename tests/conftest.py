"""
Shared pytest fixtures for engine, store, query and dispatcher tests.
"""

import os
import tempfile

import pytest
import pytest_asyncio

from kvexplorer.config import ExplorerConfig
from kvexplorer.engine import Engine
from kvexplorer.models.memtable import MemTable
from kvexplorer.models.sortedcontainers import RedBlackTree
from kvexplorer.models.value import Value
from kvexplorer.query import QueryExecutor
from kvexplorer.store import Store
from kvexplorer.uploads import UploadSessions
from rpc_server.server import RPCServer
from serve import register_handlers


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest_asyncio.fixture
async def engine(temp_dir):
    """Provide an initialized async Engine instance."""
    async with Engine(storage_dir=temp_dir) as eng:
        yield eng


@pytest_asyncio.fixture
async def engine_small_threshold(temp_dir):
    """Provide an Engine with small memtable threshold for rotation tests."""
    async with Engine(storage_dir=temp_dir, memtable_threshold=100) as eng:
        yield eng


@pytest_asyncio.fixture
async def store(temp_dir):
    """Provide a Store opened on an empty directory."""
    handle = Store(fsync_interval_ms=0)
    await handle.open(temp_dir)
    yield handle
    await handle.close()


@pytest.fixture
def executor(store):
    """Provide a QueryExecutor over the open store."""
    return QueryExecutor(store)


@pytest.fixture
def sessions(store):
    """Provide an empty upload session table bound to the open store."""
    return UploadSessions(store)


@pytest_asyncio.fixture
async def server(temp_dir):
    """
    Provide an RPCServer with every handler registered.

    Nothing is opened; tests send open_db themselves. Backups are enabled and
    land under ``<temp_dir>/backups``.
    """
    config = ExplorerConfig(
        fsync_interval_ms=0,
        auto_backup_on_write=True,
        backup_path=os.path.join(temp_dir, "backups"),
    )
    store = Store(fsync_interval_ms=0)
    rpc = RPCServer(port=0)
    register_handlers(rpc, store, config)
    yield rpc
    await store.close()


@pytest.fixture
def wal_path(temp_dir):
    """Provide a path for WAL file."""
    return os.path.join(temp_dir, "test.wal")


@pytest.fixture
def sstable_path(temp_dir):
    """Provide a path for SSTable file."""
    return os.path.join(temp_dir, "test.sst")


@pytest.fixture
def memtable():
    """Provide a fresh MemTable instance."""
    return MemTable(RedBlackTree())


@pytest.fixture
def sample_entries():
    """Provide sample key-value entries in key order."""
    return [
        ("key1", Value.regular(b"value1")),
        ("key2", Value.regular(b"value2")),
        ("key3", Value.regular(b"value3")),
    ]

"""
Tests for environment-driven configuration.
"""

import pytest

from kvexplorer.config import DEFAULT_PAGE_SIZE, DEFAULT_PREVIEW_CHARS, ExplorerConfig
from kvexplorer.engine import Engine


class TestExplorerConfig:
    def test_defaults(self):
        config = ExplorerConfig.from_env({})

        assert config.page_size == DEFAULT_PAGE_SIZE == 200
        assert config.preview_chars == DEFAULT_PREVIEW_CHARS == 100
        assert config.memtable_threshold == Engine.DEFAULT_MEMTABLE_THRESHOLD
        assert config.auto_backup_on_write is False
        assert config.backup_path == "./backups"
        assert (config.host, config.port) == ("127.0.0.1", 8765)

    def test_overrides(self):
        config = ExplorerConfig.from_env(
            {
                "KVX_PAGE_SIZE": "50",
                "KVX_PREVIEW_CHARS": "20",
                "KVX_FSYNC_INTERVAL_MS": "0",
                "KVX_AUTO_BACKUP": "yes",
                "KVX_BACKUP_PATH": "/tmp/bak",
                "KVX_PORT": "9000",
            }
        )

        assert config.page_size == 50
        assert config.preview_chars == 20
        assert config.fsync_interval_ms == 0
        assert config.auto_backup_on_write is True
        assert config.backup_path == "/tmp/bak"
        assert config.port == 9000

    def test_blank_integer_uses_default(self):
        assert ExplorerConfig.from_env({"KVX_PAGE_SIZE": " "}).page_size == 200

    @pytest.mark.parametrize(
        "env",
        [
            {"KVX_PAGE_SIZE": "lots"},
            {"KVX_PAGE_SIZE": "0"},
            {"KVX_PREVIEW_CHARS": "-1"},
            {"KVX_AUTO_BACKUP": "maybe"},
            {"KVX_PORT": "70000"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            ExplorerConfig.from_env(env)

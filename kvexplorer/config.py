"""
Runtime configuration for the explorer, read from the environment.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from kvexplorer.engine import Engine

DEFAULT_PAGE_SIZE = 200
DEFAULT_PREVIEW_CHARS = 100

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class ExplorerConfig:
    """
    Settings shared by the dispatcher, query executor and store.

    Attributes:
        page_size: Rows per list_keys page when the request gives no limit.
        preview_chars: Preview length when the request gives none.
        memtable_threshold: Engine MemTable rotation size in bytes.
        fsync_interval_ms: Engine WAL fsync interval, 0 = every write.
        auto_backup_on_write: Copy a key's old value aside before overwriting
            or deleting it.
        backup_path: Directory receiving those copies.
        host: Bind address in TCP mode.
        port: Bind port in TCP mode.
    """

    page_size: int = DEFAULT_PAGE_SIZE
    preview_chars: int = DEFAULT_PREVIEW_CHARS
    memtable_threshold: int = Engine.DEFAULT_MEMTABLE_THRESHOLD
    fsync_interval_ms: int = Engine.DEFAULT_FSYNC_INTERVAL_MS
    auto_backup_on_write: bool = False
    backup_path: str = "./backups"
    host: str = "127.0.0.1"
    port: int = 8765

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        if self.preview_chars <= 0:
            raise ValueError(f"preview_chars must be positive, got {self.preview_chars}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExplorerConfig":
        """
        Build a config from ``KVX_*`` variables, falling back to defaults.

        Raises:
            ValueError: If a variable is set to something unparseable.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            page_size=_int(env, "KVX_PAGE_SIZE", defaults.page_size),
            preview_chars=_int(env, "KVX_PREVIEW_CHARS", defaults.preview_chars),
            memtable_threshold=_int(env, "KVX_MEMTABLE_THRESHOLD", defaults.memtable_threshold),
            fsync_interval_ms=_int(env, "KVX_FSYNC_INTERVAL_MS", defaults.fsync_interval_ms),
            auto_backup_on_write=_bool(env, "KVX_AUTO_BACKUP", defaults.auto_backup_on_write),
            backup_path=env.get("KVX_BACKUP_PATH", defaults.backup_path),
            host=env.get("KVX_HOST", defaults.host),
            port=_int(env, "KVX_PORT", defaults.port),
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")

"""
Browse, search and edit an embedded ordered key-value store incrementally.

This package provides:
- Store: open/close, get/set/delete and seekable iteration over the engine
- QueryExecutor: prefix, substring and regex listings with previews,
  sort direction and offset/start-key pagination
- UploadSessions: chunked value uploads committed atomically
"""

from kvexplorer.config import ExplorerConfig
from kvexplorer.query import QueryExecutor, QueryResult, QuerySpec
from kvexplorer.store import Store
from kvexplorer.uploads import UploadSessions

__all__ = [
    "ExplorerConfig",
    "QueryExecutor",
    "QueryResult",
    "QuerySpec",
    "Store",
    "UploadSessions",
]

"""
Key-space queries: matching, previews and paginated listings.
"""

from kvexplorer.query.executor import QueryExecutor
from kvexplorer.query.matcher import MatchMode, build_matcher
from kvexplorer.query.preview import build_preview, is_binary
from kvexplorer.query.types import QueryResult, QuerySpec

__all__ = [
    "MatchMode",
    "QueryExecutor",
    "QueryResult",
    "QuerySpec",
    "build_matcher",
    "build_preview",
    "is_binary",
]

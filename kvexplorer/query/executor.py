"""
QueryExecutor - filtered, sorted, paginated key listings.
"""

import asyncio
import logging
from collections.abc import Iterator

from kvexplorer.config import DEFAULT_PAGE_SIZE, DEFAULT_PREVIEW_CHARS
from kvexplorer.models.exceptions import NotOpenError
from kvexplorer.models.key_item import KeyItem
from kvexplorer.query.matcher import KeyMatcher, build_matcher
from kvexplorer.query.preview import build_preview
from kvexplorer.query.types import QueryResult, QuerySpec
from kvexplorer.store import Store, StoreItem

logger = logging.getLogger(__name__)


class QueryExecutor:
    """
    Runs listings against a Store.

    The walk runs in the thread pool over the store's point-in-time iterator,
    so a long substring or regex scan leaves the event loop free to accept
    other requests.
    """

    def __init__(
        self,
        store: Store,
        default_limit: int = DEFAULT_PAGE_SIZE,
        default_preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self._store = store
        self._default_limit = default_limit
        self._default_preview_chars = default_preview_chars

    async def list_keys(self, query: QuerySpec) -> QueryResult:
        """
        Return one page of keys matching ``query``.

        Raises:
            NotOpenError: No store is open; raised before any iteration.
            InvalidPatternError: Regex mode with a pattern that won't compile.
            StoreFailureError: The walk failed part way; no rows are returned.
        """
        if not self._store.is_open:
            raise NotOpenError()

        matcher = build_matcher(query.mode, query.pattern)
        reverse = query.sort_descending
        start = query.start_key if query.start_key is not None else matcher.seek_key(reverse)

        loop = asyncio.get_running_loop()
        async with self._store.scan(start, reverse, matcher.end_key(reverse)) as items:
            result = await loop.run_in_executor(None, self._collect, items, matcher, query)
        logger.debug(
            f"list_keys mode={query.mode.value} pattern={query.pattern!r} "
            f"desc={reverse} -> {len(result.keys)} rows, has_more={result.has_more}"
        )
        return result

    def _collect(
        self, items: Iterator[StoreItem], matcher: KeyMatcher, query: QuerySpec
    ) -> QueryResult:
        limit = query.limit if query.limit > 0 else self._default_limit
        preview_chars = (
            query.preview_chars if query.preview_chars > 0 else self._default_preview_chars
        )
        to_skip = query.offset if query.start_key is None else 0

        matches = self._matching(items, matcher, query.sort_descending)
        result = QueryResult()

        for item in matches:
            if to_skip > 0:
                to_skip -= 1
                continue

            result.keys.append(
                KeyItem(
                    key=item.key,
                    value_preview=build_preview(item.value, preview_chars),
                    size=item.size,
                    expires_at=item.expires_at,
                )
            )
            if len(result.keys) >= limit:
                # Peek for one more match; it is never added to the page
                result.has_more = next(matches, None) is not None
                break

        return result

    @staticmethod
    def _matching(
        items: Iterator[StoreItem], matcher: KeyMatcher, reverse: bool
    ) -> Iterator[StoreItem]:
        for item in items:
            if matcher.is_past_end(item.key, reverse):
                return
            if matcher.matches(item.key):
                yield item

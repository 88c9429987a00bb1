"""
Query parameters and results for key listings.
"""

from dataclasses import dataclass, field
from typing import Any

from kvexplorer.models.key_item import KeyItem
from kvexplorer.query.matcher import MatchMode


@dataclass
class QuerySpec:
    """
    Caller-supplied listing parameters.

    Attributes:
        pattern: Prefix, substring or regex depending on ``mode``.
        mode: Matching mode; unknown strings fall back to prefix.
        sort_descending: Walk keys from highest to lowest.
        limit: Page size cap; 0 or less means "use the configured default".
        offset: Matches to skip before collecting; ignored when ``start_key``
            is set.
        start_key: Resume point; takes precedence over ``offset``.
        preview_chars: Preview length; 0 or less means the default.
    """

    pattern: str = ""
    mode: MatchMode = MatchMode.PREFIX
    sort_descending: bool = False
    limit: int = 0
    offset: int = 0
    start_key: str | None = None
    preview_chars: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.mode, MatchMode):
            self.mode = MatchMode.parse(self.mode)
        if self.offset < 0:
            self.offset = 0
        if self.start_key == "":
            self.start_key = None


@dataclass
class QueryResult:
    """One page of a listing."""

    keys: list[KeyItem] = field(default_factory=list)
    has_more: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"keys": [item.to_dict() for item in self.keys], "has_more": self.has_more}

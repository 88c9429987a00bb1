"""
KeyItem - one row of a key listing.
"""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class KeyItem:
    """
    A point-in-time view of one key, built fresh for every query.

    Attributes:
        key: The raw key.
        value_preview: Display-safe text prefix or a binary size marker.
        size: Exact byte length of the full value when it was read.
        expires_at: Absolute expiry in unix seconds, 0 for none. May be stale
            as soon as another writer touches the key.
    """

    key: str
    value_preview: str
    size: int
    expires_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

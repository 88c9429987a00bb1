"""
Value and ValueType for representing stored bytes with expiry metadata.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum


class ValueType(IntEnum):
    """Type of value stored in the database."""

    REGULAR = 0
    TOMBSTONE = 1


@dataclass
class Value:
    """
    Represents a value stored in the database with metadata.

    Attributes:
        data: Raw bytes stored (None for tombstones).
        ts: Timestamp when the value was written.
        expires_at: Absolute expiry in unix seconds, 0 means no expiry.
        type: Whether this is a regular value or a tombstone.
    """

    data: bytes | None
    ts: datetime
    expires_at: int = 0
    type: ValueType = ValueType.REGULAR
    _cached_bytes: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        ts_bytes = self.ts.isoformat().encode("utf-8")
        data_bytes = self.data if self.data is not None else b""

        # Format: [type:1][ts_len:4][ts][expires_at:8][data_len:4][data]
        self._cached_bytes = (
            self.type.to_bytes(1, "big")
            + len(ts_bytes).to_bytes(4, "big")
            + ts_bytes
            + self.expires_at.to_bytes(8, "big")
            + len(data_bytes).to_bytes(4, "big")
            + data_bytes
        )

    @classmethod
    def regular(
        cls, data: bytes, ttl_seconds: int = 0, ts: datetime | None = None
    ) -> "Value":
        """Build a live value; ``ttl_seconds <= 0`` never expires."""
        ts = ts or datetime.now()
        expires_at = int(ts.timestamp()) + ttl_seconds if ttl_seconds > 0 else 0
        return cls(data=bytes(data), ts=ts, expires_at=expires_at)

    @classmethod
    def tombstone(cls, ts: datetime | None = None) -> "Value":
        return cls(data=None, ts=ts or datetime.now(), type=ValueType.TOMBSTONE)

    def is_tombstone(self) -> bool:
        return self.type == ValueType.TOMBSTONE

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at == 0:
            return False
        if now is None:
            now = time.time()
        return self.expires_at <= now

    def is_live(self, now: float | None = None) -> bool:
        """True when the value is neither deleted nor expired."""
        return not self.is_tombstone() and not self.is_expired(now)

    def __bytes__(self) -> bytes:
        return self._cached_bytes

    def size_bytes(self) -> int:
        """Get serialized size without creating a new bytes object."""
        return len(self._cached_bytes)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Value":
        """Deserialize from bytes."""
        offset = 0

        value_type = ValueType(data[offset])
        offset += 1

        ts_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        ts = datetime.fromisoformat(data[offset : offset + ts_len].decode("utf-8"))
        offset += ts_len

        expires_at = int.from_bytes(data[offset : offset + 8], "big")
        offset += 8

        data_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        if value_type == ValueType.TOMBSTONE:
            value_data = None
        else:
            value_data = bytes(data[offset : offset + data_len])

        return cls(data=value_data, ts=ts, expires_at=expires_at, type=value_type)

"""
WALEntry - one logged put or delete and its on-disk frame.
"""

import zlib
from dataclasses import dataclass

from kvexplorer.models.value import Value

# [length:4] before the payload, [crc32:4] after it
FRAME_HEADER_BYTES = 4
FRAME_TRAILER_BYTES = 4


def checksum(payload: bytes) -> int:
    return zlib.crc32(payload) & 0xFFFFFFFF


@dataclass
class WALEntry:
    """
    A single logged write. Deletes are logged as tombstone values, so replay
    needs no separate operation code.

    Payload: [seq:8][key_len:4][key][value_len:4][value_bytes]
    Frame:   [payload_len:4][payload][crc32(payload):4]
    """

    key: str
    value: Value
    seq: int

    def __bytes__(self) -> bytes:
        key_bytes = self.key.encode("utf-8")
        value_bytes = bytes(self.value)
        return b"".join(
            (
                self.seq.to_bytes(8, "big"),
                len(key_bytes).to_bytes(4, "big"),
                key_bytes,
                len(value_bytes).to_bytes(4, "big"),
                value_bytes,
            )
        )

    def to_frame(self) -> bytes:
        """The payload wrapped with its length and checksum, ready to append."""
        payload = bytes(self)
        return (
            len(payload).to_bytes(FRAME_HEADER_BYTES, "big")
            + payload
            + checksum(payload).to_bytes(FRAME_TRAILER_BYTES, "big")
        )

    @classmethod
    def from_bytes(cls, payload: bytes) -> "WALEntry":
        view = memoryview(payload)

        seq = int.from_bytes(view[:8], "big")
        key_len = int.from_bytes(view[8:12], "big")
        key_end = 12 + key_len
        key = bytes(view[12:key_end]).decode("utf-8")

        value_len = int.from_bytes(view[key_end : key_end + 4], "big")
        value_start = key_end + 4
        value = Value.from_bytes(bytes(view[value_start : value_start + value_len]))

        return cls(key=key, value=value, seq=seq)

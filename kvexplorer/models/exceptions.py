"""
Custom exceptions for the explorer and its storage engine.

Every failure a caller can observe derives from ExplorerError so the request
dispatcher can turn it into a single error response.
"""


class ExplorerError(Exception):
    """Base class for all explorer failures."""


class NotOpenError(ExplorerError):
    """Raised when an operation needs an open store and none is open."""

    def __init__(self) -> None:
        super().__init__("database not open")


class AlreadyOpenError(ExplorerError):
    """Raised when opening a store on a handle that already holds one."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"database is already open: {path}")


class PathNotFoundError(ExplorerError):
    """Raised when the store directory does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"directory does not exist: {path}")


class StoreFailureError(ExplorerError):
    """Raised when the underlying engine fails to open, read or write."""


class KeyNotFoundError(ExplorerError):
    """Raised by point reads on a missing, deleted or expired key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"key not found: {key}")


class InvalidPatternError(ExplorerError):
    """Raised when a regex query pattern fails to compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        super().__init__(f"invalid regex {pattern!r}: {reason}")


class SessionNotFoundError(ExplorerError):
    """Raised on append/commit against an unknown or already committed upload."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"unknown upload session: {session_id}")


class DecodeFailureError(ExplorerError):
    """
    Raised when a request envelope, parameter or encoded payload is malformed.

    ``request_id`` holds the envelope id when it could still be read, so the
    error response can be correlated.
    """

    def __init__(self, message: str, request_id: str = "") -> None:
        self.request_id = request_id
        super().__init__(message)


class WALCorruptionError(StoreFailureError):
    """
    Raised when WAL entry corruption is detected via checksum mismatch.

    This is a fail-fast error indicating data integrity issues.
    """

    def __init__(self, expected: int, actual: int, entry_offset: int):
        """
        Initialize corruption error.

        Args:
            expected: Expected CRC32 checksum.
            actual: Actual CRC32 checksum computed.
            entry_offset: File offset where corruption detected.
        """
        self.expected = expected
        self.actual = actual
        self.entry_offset = entry_offset
        super().__init__(
            f"WAL corruption detected at offset {entry_offset}: "
            f"expected CRC32 0x{expected:08x}, got 0x{actual:08x}"
        )


class SSTableCorruptionError(StoreFailureError):
    """Raised when an SSTable entry is cut short or does not match its index."""

    def __init__(self, file_path: str, offset: int, reason: str):
        self.file_path = file_path
        self.offset = offset
        super().__init__(f"SSTable {file_path} corrupt at offset {offset}: {reason}")

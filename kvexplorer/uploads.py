"""
UploadSessions - chunked writes assembled in memory and committed once.

Protocol per session id:
1. init: reserve an empty buffer
2. append (repeatable): decode a base64 chunk and append it
3. commit: remove the session and persist its bytes through the Store

Chunks are appended in the order the append calls arrive. The chunk index a
caller sends is logged but never used to reorder or validate, so a transport
that reorders or duplicates chunks produces a corrupted value silently.
Sessions never expire; one that is never committed stays in memory for the
life of the process.
"""

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass, field

from kvexplorer.models.exceptions import DecodeFailureError, SessionNotFoundError
from kvexplorer.store import Store

logger = logging.getLogger(__name__)


@dataclass
class UploadSession:
    """
    Transient write-in-progress state.

    Attributes:
        id: Caller-chosen token correlating init, append and commit.
        declared_length: Length announced at init; a hint only.
        declared_key: Key announced at init; the commit's key is what gets
            written.
        buffer: Bytes received so far, in arrival order.
        chunks: Number of appends received.
        created_at: Monotonic time of init.
    """

    id: str
    declared_length: int = 0
    declared_key: str = ""
    buffer: bytearray = field(default_factory=bytearray)
    chunks: int = 0
    created_at: float = field(default_factory=time.monotonic)


class UploadSessions:
    """
    The session table. Only init/append/commit touch it, each lookup-and-mutate
    under one lock.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self._sessions: dict[str, UploadSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def init(self, session_id: str, declared_length: int = 0, declared_key: str = "") -> None:
        """Reserve an empty buffer for ``session_id``, replacing any existing one."""
        session = UploadSession(
            id=session_id,
            declared_length=max(declared_length, 0),
            declared_key=declared_key,
        )
        async with self._lock:
            previous = self._sessions.get(session_id)
            self._sessions[session_id] = session

        if previous is not None:
            logger.warning(
                f"Upload session {session_id!r} re-initialised, "
                f"discarding {len(previous.buffer)} buffered bytes"
            )
        logger.debug(f"Upload session {session_id!r} opened, expecting {declared_length} bytes")

    async def append(self, session_id: str, chunk_index: int, data: str) -> int:
        """
        Decode one base64 chunk and append it to the session buffer.

        Returns:
            Bytes buffered so far.

        Raises:
            DecodeFailureError: ``data`` is not valid base64; nothing is appended.
            SessionNotFoundError: No such session; nothing is appended.
        """
        payload = decode_payload(data)

        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.buffer.extend(payload)
            session.chunks += 1
            buffered = len(session.buffer)

        logger.debug(
            f"Upload session {session_id!r} chunk #{chunk_index}: "
            f"+{len(payload)} bytes ({buffered} buffered)"
        )
        return buffered

    async def commit(
        self, session_id: str, key: str, ttl_seconds: int = 0, backup_dir: str | None = None
    ) -> int:
        """
        Remove the session and write its bytes under ``key``.

        The session is gone before the write starts: a second commit fails
        with SessionNotFoundError, and a failed write cannot be retried
        without uploading again.

        Args:
            session_id: Session to commit.
            key: Key that receives the assembled value.
            ttl_seconds: Lifetime in seconds, <= 0 for none.
            backup_dir: When set, the key's previous value is copied there first.

        Returns:
            Number of bytes written.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)

        value = bytes(session.buffer)
        if session.declared_length and len(value) != session.declared_length:
            logger.warning(
                f"Upload session {session_id!r} assembled {len(value)} bytes, "
                f"{session.declared_length} were declared"
            )

        if backup_dir is not None:
            await self._store.backup_value(key, backup_dir)

        await self._store.set(key, value, ttl_seconds)
        logger.debug(
            f"Upload session {session_id!r} committed {len(value)} bytes "
            f"in {session.chunks} chunk(s) to {key!r}"
        )
        return len(value)


def decode_payload(data: str) -> bytes:
    """Strict standard base64 decode of a transport payload."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise DecodeFailureError(f"invalid base64 payload: {e}") from e

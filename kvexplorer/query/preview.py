"""
Display-safe previews of stored values.
"""

from kvexplorer.config import DEFAULT_PREVIEW_CHARS

# Only this many leading bytes are inspected for NULs
BINARY_SNIFF_BYTES = 512

TRUNCATION_MARKER = "..."

# Worst-case UTF-8 width, so a byte window always covers enough characters
_MAX_UTF8_CHAR_BYTES = 4


def is_binary(value: bytes) -> bool:
    """
    Heuristic: a NUL byte among the first 512 bytes means binary.

    Not a content-type detector. NULs further in go unnoticed, and
    unprintable bytes without a NUL are still treated as text.
    """
    return b"\x00" in value[:BINARY_SNIFF_BYTES]


def build_preview(value: bytes, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> str:
    """
    Render ``value`` for a listing row.

    Binary values become ``[Binary <n> bytes]``. Text is decoded as UTF-8
    (undecodable bytes replaced) and cut to ``preview_chars`` characters with
    a trailing ``...`` when anything was cut.
    """
    if is_binary(value):
        return f"[Binary {len(value)} bytes]"

    if preview_chars <= 0:
        preview_chars = DEFAULT_PREVIEW_CHARS

    window = value[: preview_chars * _MAX_UTF8_CHAR_BYTES + 1]
    text = window.decode("utf-8", errors="replace")
    if len(text) > preview_chars:
        return text[:preview_chars] + TRUNCATION_MARKER
    return text

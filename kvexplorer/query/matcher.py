"""
Key matchers for the three listing modes.

A matcher is chosen once per query, so the scan loop never re-branches on the
mode for each key.
"""

import re
import sys
from abc import ABC, abstractmethod
from enum import Enum

from kvexplorer.models.exceptions import InvalidPatternError

_MAX_CHAR = chr(sys.maxunicode)


class MatchMode(str, Enum):
    PREFIX = "prefix"
    SUBSTRING = "substring"
    REGEX = "regex"

    @classmethod
    def parse(cls, raw: str | None) -> "MatchMode":
        """Unknown or missing modes fall back to prefix matching."""
        try:
            return cls(raw)
        except ValueError:
            return cls.PREFIX


class KeyMatcher(ABC):
    """Decides which keys belong to a listing and where the walk starts."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern

    @abstractmethod
    def matches(self, key: str) -> bool:
        pass

    def seek_key(self, reverse: bool) -> str | None:
        """Where to position the iterator when the caller gave no start key."""
        return None

    def is_past_end(self, key: str, reverse: bool) -> bool:
        """True once no key at or beyond ``key`` (in walk order) can match."""
        return False

    def end_key(self, reverse: bool) -> str | None:
        """Bound handed to the store so it stops copying past the last candidate."""
        return None


class PrefixMatcher(KeyMatcher):
    """
    Keys that start with the pattern.

    Matching keys form one contiguous run in key order, so ascending walks
    seek to the pattern and descending walks seek just past the run; either
    way the walk ends as soon as it leaves the run.
    """

    def matches(self, key: str) -> bool:
        return key.startswith(self.pattern)

    def seek_key(self, reverse: bool) -> str | None:
        if not reverse:
            return self.pattern
        return prefix_successor(self.pattern)

    def end_key(self, reverse: bool) -> str | None:
        if reverse:
            return self.pattern
        return prefix_successor(self.pattern)

    def is_past_end(self, key: str, reverse: bool) -> bool:
        if reverse:
            # Every key carrying the pattern sorts at or above the pattern
            return key < self.pattern
        return key > self.pattern and not key.startswith(self.pattern)


class SubstringMatcher(KeyMatcher):
    def matches(self, key: str) -> bool:
        return self.pattern in key


class RegexMatcher(KeyMatcher):
    """Keys containing a match for the regex; an empty pattern matches all keys."""

    def __init__(self, pattern: str) -> None:
        super().__init__(pattern)
        try:
            self._regex = re.compile(pattern) if pattern else None
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e

    def matches(self, key: str) -> bool:
        return self._regex is None or self._regex.search(key) is not None


def build_matcher(mode: MatchMode | str | None, pattern: str) -> KeyMatcher:
    """
    Build the matcher for ``mode``.

    Raises:
        InvalidPatternError: ``mode`` is regex and ``pattern`` does not compile.
    """
    mode = MatchMode.parse(mode) if not isinstance(mode, MatchMode) else mode
    if mode is MatchMode.SUBSTRING:
        return SubstringMatcher(pattern)
    if mode is MatchMode.REGEX:
        return RegexMatcher(pattern)
    return PrefixMatcher(pattern)


def prefix_successor(prefix: str) -> str | None:
    """
    Smallest string greater than every string that starts with ``prefix``.

    Returns None when no such string exists (empty prefix, or a prefix made
    only of the highest code point), meaning "end of keyspace".
    """
    stripped = prefix.rstrip(_MAX_CHAR)
    if not stripped:
        return None
    return stripped[:-1] + chr(ord(stripped[-1]) + 1)

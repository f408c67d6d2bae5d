"""Path parsing for the state store.

Paths are handled as tuples of segments internally so that ancestor
lookups never depend on string prefix matching (``"ab"`` is not an
ancestor of ``"abc.d"``).
"""

from __future__ import annotations

from collections.abc import Iterator

from pyboot._constants import PATH_SEPARATOR, WILDCARD_PATH
from pyboot.exceptions import InvalidPathError

Segments = tuple[str, ...]


def parse_path(path: str) -> Segments:
    """Split *path* into segments, rejecting empty paths and empty segments."""
    if not isinstance(path, str):
        raise InvalidPathError(path, "path must be a string")
    if not path:
        raise InvalidPathError(path, "path must be non-empty")
    if path == WILDCARD_PATH:
        raise InvalidPathError(path, "the wildcard path cannot be read or written")
    segments = tuple(path.split(PATH_SEPARATOR))
    if any(not segment for segment in segments):
        raise InvalidPathError(path, "path contains an empty segment")
    return segments


def parse_subscription_path(path: str) -> Segments | None:
    """Like :func:`parse_path`, but returns ``None`` for the wildcard path."""
    if path == WILDCARD_PATH:
        return None
    return parse_path(path)


def join_path(segments: Segments) -> str:
    return PATH_SEPARATOR.join(segments)


def ancestors(segments: Segments) -> Iterator[Segments]:
    """Yield every proper ancestor of *segments*, nearest first."""
    for end in range(len(segments) - 1, 0, -1):
        yield segments[:end]

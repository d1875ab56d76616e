"""Project-relative path normalization (no traversal, no control characters)."""

from app.errors import InvalidRequest

MAX_PATH_LENGTH = 1024


def _check_segment(segment: str) -> str:
    """Return segment if safe; '.', '..' and control characters are rejected."""
    if segment in (".", ".."):
        raise InvalidRequest(f"Unsafe path segment: {segment!r}")
    if any(ord(c) < 32 or ord(c) == 127 for c in segment):
        raise InvalidRequest(f"Control character in path segment: {segment!r}")
    return segment


def normalize_path(path: str) -> str:
    """
    Canonical form of a file path inside a project: forward slashes, no leading
    or trailing slash, no empty segments. Raises InvalidRequest if the result is
    empty, too long or contains an unsafe segment.
    """
    parts = (path or "").replace("\\", "/").split("/")
    normalized = "/".join(_check_segment(p) for p in parts if p)
    if not normalized:
        raise InvalidRequest("File path is required")
    if len(normalized) > MAX_PATH_LENGTH:
        raise InvalidRequest(f"File path longer than {MAX_PATH_LENGTH} characters")
    return normalized

"""
Logical path handling.

Paths are slash-delimited keys like ``concept/ruby/classes``. They are
caller-chosen, but must be relative, free of traversal segments and
free of characters that are unsafe on common filesystems.
"""

import re

from engram_vault.core.errors import InvalidPathError


INVALID_CHARACTERS = set('<>:"|?*')


def normalize_path(path: str) -> str:
    """
    Validate and canonicalize a logical path.

    Surrounding whitespace and trailing slashes are stripped and repeated
    slashes collapsed.

    Raises:
        InvalidPathError: empty, absolute, traversing or containing
            forbidden characters
    """
    if path is None:
        raise InvalidPathError("", "path cannot be empty")

    cleaned = str(path).strip()
    if cleaned.startswith("/"):
        raise InvalidPathError(path, "absolute paths are not allowed")

    cleaned = re.sub(r"/+", "/", cleaned).rstrip("/")
    if not cleaned:
        raise InvalidPathError(path, "path cannot be empty")

    for segment in cleaned.split("/"):
        if segment in (".", ".."):
            raise InvalidPathError(path, "path traversal is not allowed")

    bad = sorted(c for c in set(cleaned) if c in INVALID_CHARACTERS or ord(c) < 32)
    if bad:
        raise InvalidPathError(path, f"invalid characters: {' '.join(repr(c) for c in bad)}")

    return cleaned


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Translate a shell glob into an anchored regex.

    ``*`` and ``?`` never cross a ``/``. ``**/`` matches zero or more
    whole segments and a bare ``**`` matches anything, so ``a/*`` selects
    direct children of ``a`` while ``a/**`` selects every descendant.
    """
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile(r"\A" + "".join(parts) + r"\Z")


def path_matches_prefix(path: str, prefix: str) -> bool:
    """True when the path equals the prefix or starts with it."""
    prefix = prefix.strip()
    if not prefix:
        return True
    return path == prefix.rstrip("/") or path.startswith(prefix)


def normalize_pattern(pattern: str) -> str:
    """
    Canonicalize a listing prefix or glob pattern.

    Unlike normalize_path this never raises: leading slashes are dropped
    and repeated slashes collapsed, but a trailing slash and wildcards
    are kept.
    """
    return re.sub(r"/+", "/", (pattern or "").strip()).lstrip("/")
